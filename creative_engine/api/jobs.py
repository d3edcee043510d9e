"""
Jobs API Routes
Handles job status queries, progress and candidates.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from creative_engine.api.deps import get_db, get_status_publisher
from creative_engine.models.candidate import Candidate
from creative_engine.models.job import GenerationJob
from creative_engine.schemas.job import CandidateResponse, JobListResponse, JobProgress, JobResponse, JobStatus
from creative_engine.services.status import StatusPublisher

router = APIRouter()


def _get_job_or_404(db: Session, job_id: str) -> GenerationJob:
    job = db.query(GenerationJob).filter(GenerationJob.id == job_id).first()
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )
    return job


@router.get("", response_model=JobListResponse)
def list_jobs(
    tenant_id: Optional[str] = None,
    job_status: Optional[JobStatus] = None,
    limit: int = 20,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    """List jobs with optional filters."""
    query = db.query(GenerationJob)

    if tenant_id:
        query = query.filter(GenerationJob.tenant_id == tenant_id)

    if job_status:
        query = query.filter(GenerationJob.status == job_status.value)

    total = query.count()
    jobs = query.order_by(GenerationJob.created_at.desc()).offset(offset).limit(limit).all()

    return JobListResponse(jobs=[JobResponse.model_validate(job) for job in jobs], total=total)


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, db: Session = Depends(get_db)):
    """Get a job with its settings snapshot and QA summary."""
    return _get_job_or_404(db, job_id)


@router.get("/{job_id}/progress", response_model=JobProgress)
def get_job_progress(job_id: str, publisher: StatusPublisher = Depends(get_status_publisher)):
    """Flat progress signal: stage index, description, retry and fallback flags."""
    progress = publisher.get_progress(job_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )
    return progress


@router.get("/{job_id}/candidates", response_model=List[CandidateResponse])
def list_candidates(job_id: str, db: Session = Depends(get_db)):
    """All candidates of a job, fallback included, in variant order."""
    _get_job_or_404(db, job_id)
    return (
        db.query(Candidate)
        .filter(Candidate.job_id == job_id)
        .order_by(Candidate.variant_index)
        .all()
    )
