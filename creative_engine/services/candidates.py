"""
Candidate Store
Persists generated variants to platform storage and records them with provenance.
"""

import io
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from PIL import Image
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from creative_engine.core.database import SessionLocal
from creative_engine.core.errors import OwnershipLostError
from creative_engine.models.candidate import Candidate
from creative_engine.models.job import GenerationJob, PipelineStage
from creative_engine.services.providers.base import GeneratedAsset
from creative_engine.services.storage import StorageService

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/webm": "webm",
}


def candidate_path(tenant_id: str, job_id: str, attempt: int, variant_index: int, mime_type: str,
                   is_fallback: bool = False) -> str:
    """Deterministic storage path, so re-running a stage overwrites instead of duplicating."""
    ext = EXTENSIONS.get(mime_type, "bin")
    folder = "fallback" if is_fallback else f"attempt_{attempt}"
    return f"generations/{tenant_id}/{job_id}/{folder}/variant_{variant_index}.{ext}"


def image_dimensions(data: bytes, mime_type: str) -> Tuple[Optional[int], Optional[int]]:
    if not mime_type.startswith("image/"):
        return None, None
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (OSError, ValueError) as e:
        logger.warning(f"[Candidates] Could not read image size: {e}")
        return None, None


class CandidateStore:
    """Append-only candidate records for a job."""

    def __init__(self, storage: StorageService, session_factory: Callable[[], Session] = SessionLocal):
        self.storage = storage
        self.session_factory = session_factory

    @staticmethod
    def _touch_owned(db: Session, job_id: str, worker_id: str, expected: PipelineStage):
        """Heartbeat the job inside `db`, or raise when another worker owns it now."""
        now = datetime.utcnow()
        result = db.execute(
            update(GenerationJob)
            .where(
                GenerationJob.id == job_id,
                GenerationJob.status == expected.value,
                GenerationJob.worker_id == worker_id,
            )
            .values(heartbeat_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OwnershipLostError(
                f"Job {job_id} is no longer owned by {worker_id}; candidate discarded",
                details={"job_id": job_id},
            )

    def next_variant_index(self, job_id: str) -> int:
        db = self.session_factory()
        try:
            current = db.query(func.max(Candidate.variant_index)).filter(Candidate.job_id == job_id).scalar()
            return (current or 0) + 1
        finally:
            db.close()

    def store(
        self,
        tenant_id: str,
        job_id: str,
        attempt: int,
        variant_index: int,
        provider: str,
        asset: GeneratedAsset,
        model: Optional[str] = None,
        is_fallback: bool = False,
        worker_id: Optional[str] = None,
        expected: Optional[PipelineStage] = None,
    ) -> Candidate:
        """
        Upload the asset and insert its candidate row.

        With `worker_id` and `expected`, the job must still be owned by that worker in that
        stage, both before the upload and in the transaction that inserts the row.

        Raises:
            StorageError: upload failed
            OwnershipLostError: the job was reclaimed
        """
        guarded = worker_id is not None and expected is not None
        if guarded:
            db = self.session_factory()
            try:
                self._touch_owned(db, job_id, worker_id, expected)
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        path = candidate_path(tenant_id, job_id, attempt, variant_index, asset.mime_type, is_fallback)
        url = self.storage.put(path, asset.data, asset.mime_type)
        width, height = image_dimensions(asset.data, asset.mime_type)

        db = self.session_factory()
        try:
            if guarded:
                self._touch_owned(db, job_id, worker_id, expected)
            candidate = Candidate(
                job_id=job_id,
                attempt=attempt,
                variant_index=variant_index,
                provider=provider,
                model=model or asset.model,
                storage_path=path,
                storage_url=url,
                mime_type=asset.mime_type,
                byte_size=len(asset.data),
                width=width,
                height=height,
                is_fallback=is_fallback,
                is_final=False,
            )
            db.add(candidate)
            db.commit()
            db.refresh(candidate)
            db.expunge(candidate)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(
            f"[Candidates] job={job_id} attempt={attempt} variant={variant_index} "
            f"provider={provider} stored {len(asset.data)} bytes at {path}"
        )
        return candidate

    def list_for_job(self, job_id: str, attempt: Optional[int] = None) -> List[Candidate]:
        db = self.session_factory()
        try:
            query = db.query(Candidate).filter(Candidate.job_id == job_id)
            if attempt is not None:
                query = query.filter(Candidate.attempt == attempt)
            candidates = query.order_by(Candidate.variant_index).all()
            for candidate in candidates:
                db.expunge(candidate)
            return candidates
        finally:
            db.close()

    def record_score(self, candidate_id: int, score: float, passed: bool, details: dict) -> Tuple[float, bool]:
        """
        Write the QA outcome once.

        Returns the stored outcome: a second write never overrides the first.
        """
        db = self.session_factory()
        try:
            result = db.execute(
                update(Candidate)
                .where(Candidate.id == candidate_id, Candidate.qa_score.is_(None))
                .values(qa_score=score, qa_passed=passed, qa_details=details, scored_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount == 1:
                return score, passed
            row = db.query(Candidate.qa_score, Candidate.qa_passed).filter(Candidate.id == candidate_id).one()
            return row.qa_score, bool(row.qa_passed)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
