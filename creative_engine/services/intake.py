"""
Intake Service
Validates a generation request, resolves product references, composes the prompt
and persists the job as queued (or failed when fidelity cannot be guaranteed).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from creative_engine.core.errors import ValidationError
from creative_engine.models.job import GenerationJob, PipelineStage, PipelineStageRecord
from creative_engine.schemas.generation import GenerationRequest
from creative_engine.services.catalog import CatalogService
from creative_engine.services.product_reference import ProductReferenceResolver
from creative_engine.services.prompt_composer import compose_prompt
from creative_engine.services.providers.registry import validate_providers

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    return f"gen_{uuid.uuid4().hex[:12]}"


@dataclass
class IntakeResult:
    job_id: str
    status: str
    error: Optional[str] = None
    dispatched: bool = False


class IntakeService:
    """Creates generation jobs."""

    def __init__(self, db: Session, dispatch: Optional[Callable[[str], bool]] = None):
        self.db = db
        self.dispatch = dispatch
        self.catalog = CatalogService(db)
        self.resolver = ProductReferenceResolver(self.catalog)

    def _search_text(self, request: GenerationRequest) -> str:
        parts = [request.brief or ""]
        if request.settings.overlay_text:
            parts.append(request.settings.overlay_text)
        return "\n".join(part for part in parts if part)

    def submit(self, request: GenerationRequest) -> IntakeResult:
        job_id = new_job_id()
        content_type = request.content_type
        settings_snapshot = request.settings.model_dump()
        now = datetime.utcnow()

        job = GenerationJob(
            id=job_id,
            tenant_id=request.tenant_id,
            content_type=content_type,
            providers=list(request.providers),
            settings=settings_snapshot,
            brief=request.brief,
            product_id=request.product_id,
            variant_count=request.settings.variation_count,
            created_at=now,
            updated_at=now,
        )

        try:
            resolved = self.resolver.resolve(request.tenant_id, self._search_text(request), request.product_id)
            providers = validate_providers(request.providers, content_type, resolved.has_usable_reference)
        except ValidationError as e:
            return self._persist_failed(job, e)

        brand = self.catalog.get_brand_context(request.tenant_id)
        composed = compose_prompt(resolved, settings_snapshot, brand, request.brief)

        job.providers = providers
        job.references = [ref.to_dict() for ref in resolved.references]
        job.is_kit_scenario = resolved.is_kit_scenario
        job.final_prompt = composed.text
        job.negative_prompt = composed.negative_prompt
        job.fidelity_rules = composed.fidelity_rules
        job.status = PipelineStage.QUEUED.value
        self.db.add(job)
        self.db.add(PipelineStageRecord(job_id=job_id, stage=PipelineStage.QUEUED.value, attempt=0, entered_at=now))
        self.db.commit()

        logger.info(
            f"[Intake] job={job_id} tenant={request.tenant_id} type={content_type} "
            f"providers={providers} references={len(resolved.references)} kit={resolved.is_kit_scenario}"
        )

        dispatched = False
        if self.dispatch is not None:
            dispatched = self.dispatch(job_id)
        return IntakeResult(job_id=job_id, status=PipelineStage.QUEUED.value, dispatched=dispatched)

    def _persist_failed(self, job: GenerationJob, error: ValidationError) -> IntakeResult:
        now = datetime.utcnow()
        job.status = PipelineStage.FAILED.value
        job.error_message = error.message
        job.completed_at = now
        job.references = []
        self.db.add(job)
        self.db.add(PipelineStageRecord(job_id=job.id, stage=PipelineStage.QUEUED.value, attempt=0, entered_at=now))
        self.db.add(PipelineStageRecord(job_id=job.id, stage=PipelineStage.FAILED.value, attempt=0, entered_at=now))
        self.db.commit()
        logger.warning(f"[Intake] job={job.id} rejected: {error.message}")
        return IntakeResult(job_id=job.id, status=PipelineStage.FAILED.value, error=error.message)


__all__ = ["IntakeService", "IntakeResult", "new_job_id"]
