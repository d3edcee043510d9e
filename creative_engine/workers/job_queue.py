"""
Job Queue (database side)
Atomic claim, ownership-guarded status transitions and the stale-claim watchdog.

The generation_jobs row is the source of truth. Every write is a conditional UPDATE
on the expected status (and owning worker), so two workers can never both own a job.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from creative_engine.core.config import settings
from creative_engine.core.database import SessionLocal
from creative_engine.core.errors import OwnershipLostError
from creative_engine.models.candidate import Candidate
from creative_engine.models.job import (
    ACTIVE_STAGES,
    GenerationJob,
    PipelineStage,
    PipelineStageRecord,
    can_transition,
)

logger = logging.getLogger(__name__)

ACTIVE_VALUES = [stage.value for stage in ACTIVE_STAGES]


class JobQueue:
    """Database-backed job state machine."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _append_stage(self, db: Session, job_id: str, stage: PipelineStage, attempt: int):
        db.add(PipelineStageRecord(job_id=job_id, stage=stage.value, attempt=attempt, entered_at=datetime.utcnow()))

    def queued_job_ids(self, limit: int) -> List[str]:
        """Oldest queued jobs first."""
        db = self.session_factory()
        try:
            rows = (
                db.query(GenerationJob.id)
                .filter(GenerationJob.status == PipelineStage.QUEUED.value)
                .order_by(GenerationJob.created_at, GenerationJob.id)
                .limit(limit)
                .all()
            )
            return [row.id for row in rows]
        finally:
            db.close()

    def claim(self, job_id: str, worker_id: str) -> bool:
        """
        Claim a queued job for `worker_id` (queued -> generating).

        Returns:
            True if this worker now owns the job, False if it was not queued anymore
        """
        now = datetime.utcnow()
        db = self.session_factory()
        try:
            result = db.execute(
                update(GenerationJob)
                .where(GenerationJob.id == job_id, GenerationJob.status == PipelineStage.QUEUED.value)
                .values(
                    status=PipelineStage.GENERATING.value,
                    worker_id=worker_id,
                    claimed_at=now,
                    heartbeat_at=now,
                    started_at=func.coalesce(GenerationJob.started_at, now),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                logger.info(f"[Queue] Claim skipped: job={job_id} is not queued (worker={worker_id})")
                return False

            self._append_stage(db, job_id, PipelineStage.GENERATING, attempt=0)
            db.commit()
            logger.info(f"[Queue] Claimed job={job_id} worker={worker_id}")
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def claim_next(self, worker_id: str, batch: int = 10) -> Optional[str]:
        """Claim the oldest queued job this worker can win."""
        for job_id in self.queued_job_ids(batch):
            if self.claim(job_id, worker_id):
                return job_id
        return None

    def transition(
        self,
        job_id: str,
        worker_id: str,
        expected: PipelineStage,
        target: PipelineStage,
        final_candidate_id: Optional[int] = None,
        **fields,
    ):
        """
        Move an owned job from `expected` to `target` and log the stage entry.

        Extra keyword arguments are written to the job row in the same UPDATE.
        `final_candidate_id` marks that candidate as the job's only final asset
        in the same transaction.

        Raises:
            ValueError: the edge is not part of the state machine
            OwnershipLostError: the job is no longer in `expected` or owned by this worker
        """
        if not can_transition(expected, target):
            raise ValueError(f"Illegal transition {expected.value} -> {target.value}")

        now = datetime.utcnow()
        values = dict(fields)
        values.update(status=target.value, heartbeat_at=now, updated_at=now)
        if target.is_terminal:
            values["completed_at"] = now

        db = self.session_factory()
        try:
            result = db.execute(
                update(GenerationJob)
                .where(
                    GenerationJob.id == job_id,
                    GenerationJob.status == expected.value,
                    GenerationJob.worker_id == worker_id,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                raise OwnershipLostError(
                    f"Job {job_id} is no longer owned by {worker_id} in state {expected.value}",
                    details={"job_id": job_id, "target": target.value},
                )

            if final_candidate_id is not None:
                db.execute(
                    update(Candidate)
                    .where(Candidate.job_id == job_id)
                    .values(is_final=(Candidate.id == final_candidate_id))
                    .execution_options(synchronize_session=False)
                )

            attempt = fields.get("attempt")
            if attempt is None:
                attempt = db.query(GenerationJob.attempt).filter(GenerationJob.id == job_id).scalar() or 0
            self._append_stage(db, job_id, target, attempt=attempt)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(f"[Queue] job={job_id} {expected.value} -> {target.value}")

    def update_owned(self, job_id: str, worker_id: str, expected: PipelineStage, **fields):
        """Write fields on an owned job without changing its status."""
        now = datetime.utcnow()
        db = self.session_factory()
        try:
            result = db.execute(
                update(GenerationJob)
                .where(
                    GenerationJob.id == job_id,
                    GenerationJob.status == expected.value,
                    GenerationJob.worker_id == worker_id,
                )
                .values(heartbeat_at=now, updated_at=now, **fields)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                raise OwnershipLostError(f"Job {job_id} is no longer owned by {worker_id}")
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def heartbeat(self, job_id: str, worker_id: str, expected: PipelineStage):
        self.update_owned(job_id, worker_id, expected)

    def fail(self, job_id: str, worker_id: str, expected: PipelineStage, message: str, **fields):
        """Mark an owned job failed from its current stage."""
        self.transition(job_id, worker_id, expected, PipelineStage.FAILED, error_message=message, **fields)

    def reclaim_stale(self, now: Optional[datetime] = None) -> Dict[str, List[str]]:
        """
        Return stale active jobs to the queue, or fail them past the reclaim limit.

        A job is stale when its heartbeat is older than JOB_STALE_AFTER_MINUTES.
        """
        now = now or datetime.utcnow()
        cutoff = now - timedelta(minutes=settings.JOB_STALE_AFTER_MINUTES)
        outcome = {"requeued": [], "failed": []}

        db = self.session_factory()
        try:
            stale = (
                db.query(GenerationJob)
                .filter(
                    GenerationJob.status.in_(ACTIVE_VALUES),
                    func.coalesce(GenerationJob.heartbeat_at, GenerationJob.claimed_at) < cutoff,
                )
                .all()
            )
            for job in stale:
                observed_status = job.status
                observed_worker = job.worker_id
                guard = [
                    GenerationJob.id == job.id,
                    GenerationJob.status == observed_status,
                ]
                guard.append(
                    GenerationJob.worker_id == observed_worker if observed_worker is not None
                    else GenerationJob.worker_id.is_(None)
                )

                if (job.reclaim_count or 0) >= settings.JOB_MAX_RECLAIMS:
                    values = dict(
                        status=PipelineStage.FAILED.value,
                        error_message=(
                            f"Job stalled {(job.reclaim_count or 0) + 1} times without progress; giving up"
                        ),
                        completed_at=now,
                        updated_at=now,
                    )
                    target = PipelineStage.FAILED
                else:
                    values = dict(
                        status=PipelineStage.QUEUED.value,
                        worker_id=None,
                        claimed_at=None,
                        heartbeat_at=None,
                        reclaim_count=(job.reclaim_count or 0) + 1,
                        updated_at=now,
                    )
                    target = PipelineStage.QUEUED

                result = db.execute(
                    update(GenerationJob).where(*guard).values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    continue
                self._append_stage(db, job.id, target, attempt=job.attempt or 0)
                key = "failed" if target == PipelineStage.FAILED else "requeued"
                outcome[key].append(job.id)
                logger.warning(
                    f"[Watchdog] job={job.id} stale in {observed_status} (worker={observed_worker}) -> {target.value}"
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        return outcome


_job_queue: Optional[JobQueue] = None


def get_job_queue() -> JobQueue:
    """Get singleton JobQueue bound to the application session factory."""
    global _job_queue
    if _job_queue is None:
        _job_queue = JobQueue()
    return _job_queue


__all__ = ["JobQueue", "get_job_queue"]
