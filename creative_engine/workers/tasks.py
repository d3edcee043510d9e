"""
RQ Task Definitions
Defines the task functions executed by workers.

A task only carries a job id. The worker claims the job in the database before
running it, so a job dispatched twice still runs once.
"""

import logging
import os
import socket
import uuid
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from creative_engine.core.config import settings
from creative_engine.core.credentials import CredentialResolver
from creative_engine.core.database import SessionLocal
from creative_engine.services.qa_scorer import QAScorer
from creative_engine.services.storage import StorageService
from creative_engine.services.providers.registry import ProviderRegistry
from creative_engine.services.vision_judge import GeminiVisionJudge
from creative_engine.workers.job_queue import JobQueue, get_job_queue
from creative_engine.workers.pipeline import GenerationPipeline

logger = logging.getLogger(__name__)


def make_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


def build_pipeline(
    job_queue: Optional[JobQueue] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> GenerationPipeline:
    """Wire the pipeline with production services."""
    registry = ProviderRegistry(credentials=CredentialResolver(session_factory=session_factory))
    judge = None
    if settings.QA_VISION_ENABLED:
        api_key = registry.credentials.get_secret("GEMINI_API_KEY")
        if api_key:
            judge = GeminiVisionJudge(api_key=api_key)
        else:
            logger.warning("[Task] QA vision judge disabled: no Gemini key configured")

    return GenerationPipeline(
        job_queue=job_queue or get_job_queue(),
        registry=registry,
        storage=StorageService(),
        scorer=QAScorer(judge=judge),
        session_factory=session_factory,
    )


def run_generation_job(job_id: str) -> Dict[str, Any]:
    """
    RQ task: claim a queued job and run it to a terminal state.

    Returns:
        Dict with the claim outcome and final status
    """
    worker_id = make_worker_id()
    job_queue = get_job_queue()

    if not job_queue.claim(job_id, worker_id):
        logger.info(f"[Task] job={job_id} not claimable (already claimed or not queued), skipping")
        return {"job_id": job_id, "claimed": False, "status": None}

    logger.info(f"[Task] job={job_id} claimed by {worker_id}")
    status = build_pipeline(job_queue).execute(job_id, worker_id)
    return {"job_id": job_id, "claimed": True, "status": status}


def sweep_queue(batch: Optional[int] = None) -> Dict[str, Any]:
    """
    RQ task: reclaim stale jobs and dispatch the oldest queued ones.

    Dispatching more than once is harmless; only one claim can win.
    """
    from creative_engine.workers.queue import get_queue_manager

    job_queue = get_job_queue()
    reclaimed = job_queue.reclaim_stale()

    batch = batch or settings.QUEUE_SWEEP_BATCH
    queue_manager = get_queue_manager()
    dispatched = [job_id for job_id in job_queue.queued_job_ids(batch) if queue_manager.dispatch(job_id)]

    if dispatched or reclaimed["requeued"] or reclaimed["failed"]:
        logger.info(
            f"[Sweep] dispatched={len(dispatched)} requeued={len(reclaimed['requeued'])} "
            f"failed={len(reclaimed['failed'])}"
        )
    return {"dispatched": dispatched, **reclaimed}
