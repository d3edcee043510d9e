"""
Status Publisher
Read-only progress view of a job, built from committed rows in a fresh session.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from creative_engine.core.database import SessionLocal
from creative_engine.models.candidate import Candidate
from creative_engine.models.job import (
    GenerationJob,
    PipelineStage,
    PipelineStageRecord,
    STAGE_ORDER,
)
from creative_engine.schemas.job import FinalAsset, JobProgress, QASummary

logger = logging.getLogger(__name__)


def stage_index(stage: PipelineStage) -> int:
    return STAGE_ORDER.index(stage)


class StatusPublisher:
    """Builds JobProgress snapshots."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def get_progress(self, job_id: str) -> Optional[JobProgress]:
        db = self.session_factory()
        try:
            job = db.query(GenerationJob).filter(GenerationJob.id == job_id).first()
            if not job:
                return None

            status = PipelineStage(job.status)
            if status == PipelineStage.FAILED:
                last = (
                    db.query(PipelineStageRecord.stage)
                    .filter(
                        PipelineStageRecord.job_id == job_id,
                        PipelineStageRecord.stage != PipelineStage.FAILED.value,
                    )
                    .order_by(PipelineStageRecord.id.desc())
                    .first()
                )
                current_index = stage_index(PipelineStage(last.stage)) if last else 0
            else:
                current_index = stage_index(status)

            final_asset = None
            if status == PipelineStage.DONE:
                final = (
                    db.query(Candidate)
                    .filter(Candidate.job_id == job_id, Candidate.is_final == True)  # noqa: E712
                    .first()
                )
                if final:
                    final_asset = FinalAsset(
                        candidate_id=final.id,
                        url=final.storage_url,
                        mime_type=final.mime_type,
                        variant_index=final.variant_index,
                        is_fallback=bool(final.is_fallback),
                    )

            return JobProgress(
                job_id=job.id,
                status=status,
                current_stage_index=current_index,
                total_stages=len(STAGE_ORDER),
                description=status.description,
                attempt=job.attempt or 0,
                retry_count=job.retry_count or 0,
                error_message=job.error_message,
                fallback_used=bool(job.fallback_used),
                qa_summary=QASummary(**job.qa_summary) if job.qa_summary else None,
                final_asset=final_asset,
            )
        finally:
            db.close()
