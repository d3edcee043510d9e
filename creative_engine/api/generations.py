"""
Generation API Routes
Accepts generation requests and queues them for the worker pool.
"""

import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from creative_engine.api.deps import get_db, get_dispatcher, get_sweep_trigger
from creative_engine.schemas.generation import GenerationRequest, GenerationResponse, ProcessQueueResponse
from creative_engine.services.intake import IntakeService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=GenerationResponse, status_code=status.HTTP_202_ACCEPTED)
def create_generation(
    request: GenerationRequest,
    db: Session = Depends(get_db),
    dispatch: Callable[[str], bool] = Depends(get_dispatcher),
):
    """
    Create a generation job.

    The job is persisted as queued and a worker is woken up. Requests whose products
    have no registered image are stored as failed and rejected with 422.
    """
    result = IntakeService(db, dispatch=dispatch).submit(request)

    if result.error:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"job_id": result.job_id, "error": result.error},
        )

    message = "Job queued"
    if not result.dispatched:
        message = "Job queued; it will be picked up by the next queue sweep"
    return GenerationResponse(job_id=result.job_id, status=result.status, message=message)


@router.post("/process", response_model=ProcessQueueResponse, status_code=status.HTTP_202_ACCEPTED)
def process_queue(trigger: Callable[[], object] = Depends(get_sweep_trigger)):
    """Wake the workers: reclaim stale jobs and dispatch queued ones. Does not wait."""
    try:
        trigger()
    except Exception as e:
        logger.warning(f"[API] Sweep trigger failed: {e}")
        return ProcessQueueResponse(dispatched=False, message="Queue unavailable; the periodic sweep will run")
    return ProcessQueueResponse(dispatched=True, message="Queue sweep triggered")
