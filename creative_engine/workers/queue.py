"""
Queue Management Utilities
RQ dispatch of generation jobs and queue sweeps.

Dispatch only wakes a worker; the database claim decides who runs the job, so a
duplicate or lost dispatch is harmless.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from rq import Queue
from rq.job import Job, JobStatus

from creative_engine.core.config import settings
from creative_engine.core.redis import get_redis, Queues

logger = logging.getLogger(__name__)

# A started run may belong to a dead worker, so only waiting runs suppress a dispatch
WAITING_STATUSES = (JobStatus.QUEUED, JobStatus.DEFERRED, JobStatus.SCHEDULED)


def generation_rq_id(job_id: str) -> str:
    return f"generation-{job_id}"


class QueueManager:
    """Manages RQ queues for the generation pipeline."""

    def __init__(self):
        self._queues: Dict[str, Queue] = {}
        self._redis = None

    @property
    def redis(self):
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def get_queue(self, queue_name: str = Queues.GENERATION) -> Queue:
        """Get or create a queue by name."""
        if queue_name not in self._queues:
            self._queues[queue_name] = Queue(
                name=queue_name,
                connection=self.redis,
                default_timeout=settings.JOB_TIMEOUT_GENERATION
            )
            logger.debug(f"Created queue: {queue_name}")

        return self._queues[queue_name]

    def enqueue_generation(self, job_id: str) -> Job:
        """
        Enqueue a pipeline run for a generation job.

        The RQ job id is derived from the generation job id, so a run that is
        still waiting in the queue is returned instead of enqueued again.

        Args:
            job_id: GenerationJob id

        Returns:
            RQ Job instance
        """
        from creative_engine.workers.tasks import run_generation_job

        queue = self.get_queue(Queues.GENERATION)
        rq_id = generation_rq_id(job_id)
        existing = queue.fetch_job(rq_id)
        if existing is not None and existing.get_status() in WAITING_STATUSES:
            logger.debug(f"[Queue] job={job_id} already waiting (rq={rq_id})")
            return existing

        job = queue.enqueue(
            run_generation_job,
            job_id,
            job_id=rq_id,
            job_timeout=settings.JOB_TIMEOUT_GENERATION,
            meta={
                "type": "generation",
                "created_at": datetime.utcnow().isoformat(),
            }
        )
        logger.info(f"[Queue] Dispatched job={job_id} (rq={job.id})")
        return job

    def trigger_sweep(self) -> Job:
        """Enqueue a sweep: stale-claim watchdog plus re-dispatch of queued jobs."""
        from creative_engine.workers.tasks import sweep_queue

        job = self.get_queue(Queues.MAINTENANCE).enqueue(
            sweep_queue,
            job_timeout=300,
            meta={"type": "sweep", "created_at": datetime.utcnow().isoformat()}
        )
        logger.info(f"[Queue] Sweep dispatched (rq={job.id})")
        return job

    def dispatch(self, job_id: str) -> bool:
        """Fire-and-forget dispatch. A failure leaves the job queued for the next sweep."""
        try:
            self.enqueue_generation(job_id)
            return True
        except Exception as e:
            logger.warning(f"[Queue] Dispatch failed for job={job_id}, sweep will pick it up: {e}")
            return False

    def get_queue_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get statistics for pipeline queues."""
        stats = {}
        for name in (Queues.GENERATION, Queues.MAINTENANCE):
            try:
                queue = self.get_queue(name)
                stats[name] = {
                    "queued": len(queue),
                    "started": queue.started_job_registry.count,
                    "finished": queue.finished_job_registry.count,
                    "failed": queue.failed_job_registry.count,
                }
            except Exception as e:
                stats[name] = {"error": str(e)}
        return stats


# Singleton instance
_queue_manager: Optional[QueueManager] = None


def get_queue_manager() -> QueueManager:
    """Get singleton QueueManager instance."""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = QueueManager()
    return _queue_manager


__all__ = ["QueueManager", "get_queue_manager"]
