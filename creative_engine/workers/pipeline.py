"""
Generation Pipeline
Runs one claimed job through preprocess, rewrite, candidate generation, QA selection,
bounded strict retries and the fallback composition.

Every status change goes through JobQueue, guarded by the expected status and the
owning worker. Losing ownership stops the run without further writes.
"""

import io
import logging
import time
from typing import Callable, List, Optional

from PIL import Image
from sqlalchemy.orm import Session

from creative_engine.core.config import settings
from creative_engine.core.database import SessionLocal
from creative_engine.core.errors import (
    JobTimeoutError,
    OwnershipLostError,
    PipelineError,
    ProviderError,
    ValidationError,
)
from creative_engine.models.job import GenerationJob, PipelineStage
from creative_engine.services.candidates import CandidateStore
from creative_engine.services.catalog import CatalogService
from creative_engine.services.fallback import FallbackCompositor
from creative_engine.services.product_reference import ResolvedReferences
from creative_engine.services.prompt_composer import compose_prompt
from creative_engine.services.providers.base import SubmitRequest, execute_attempt
from creative_engine.services.providers.registry import ProviderRegistry, estimate_cost
from creative_engine.services.qa_scorer import QAScorer, threshold_for
from creative_engine.services.selection import Decision, ScoredCandidate, decide
from creative_engine.services.storage import StorageService
from creative_engine.workers.base import BaseWorker
from creative_engine.workers.job_queue import JobQueue

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Unexpected error during generation; please try again"

IMAGE_FORMATS = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp", "GIF": "image/gif"}

def sniff_image_mime(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return IMAGE_FORMATS.get(img.format, "image/png")
    except (OSError, ValueError):
        return "image/png"

class GenerationPipeline(BaseWorker):
    """Executes the generation state machine for claimed jobs."""

    TASK_NAME = "generation_pipeline"

    def __init__(
        self,
        job_queue: JobQueue,
        registry: ProviderRegistry,
        storage: StorageService,
        scorer: QAScorer,
        candidates: Optional[CandidateStore] = None,
        compositor: Optional[FallbackCompositor] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        max_retries: Optional[int] = None,
        max_runtime_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.job_queue = job_queue
        self.registry = registry
        self.storage = storage
        self.scorer = scorer
        self.candidates = candidates or CandidateStore(storage, session_factory)
        self.compositor = compositor or FallbackCompositor(storage)
        self.session_factory = session_factory
        self.max_retries = settings.PIPELINE_MAX_RETRIES if max_retries is None else max_retries
        self.max_runtime_seconds = (
            settings.JOB_MAX_RUNTIME_SECONDS if max_runtime_seconds is None else max_runtime_seconds
        )
        self.sleep = sleep
        self.clock = clock

    # Helpers

    def _load_job(self, job_id: str) -> GenerationJob:
        db = self.session_factory()
        try:
            job = db.query(GenerationJob).filter(GenerationJob.id == job_id).first()
            if job is None:
                raise ValidationError(f"Job {job_id} not found")
            db.expunge(job)
            return job
        finally:
            db.close()

    def _brand_context(self, tenant_id: str):
        db = self.session_factory()
        try:
            return CatalogService(db).get_brand_context(tenant_id)
        finally:
            db.close()

    def _check_deadline(self, job_id: str, started: float):
        elapsed = self.clock() - started
        if elapsed > self.max_runtime_seconds:
            raise JobTimeoutError(
                f"Generation exceeded the {self.max_runtime_seconds:.0f}s time limit",
                details={"job_id": job_id, "elapsed": round(elapsed, 1)},
            )

    # Entry points

    def run(self, job_id: str, worker_id: str) -> Optional[str]:
        """Claim and execute a job. Returns the terminal status, or None if not claimed."""
        if not self.job_queue.claim(job_id, worker_id):
            return None
        return self.execute(job_id, worker_id)

    def execute(self, job_id: str, worker_id: str) -> Optional[str]:
        """
        Execute a job this worker has already claimed.

        Returns:
            "done", "failed", or None when ownership was lost
        """
        self._log_start(self.TASK_NAME, job_id=job_id, worker_id=worker_id)
        state = {"stage": PipelineStage.GENERATING}

        try:
            status = self._execute(job_id, worker_id, state)
            self._log_complete(self.TASK_NAME, f"job={job_id} status={status}")
            return status

        except OwnershipLostError as e:
            logger.warning(f"[Pipeline] job={job_id} ownership lost, abandoning: {e.message}")
            return None

        except PipelineError as e:
            self._log_error(self.TASK_NAME, e)
            return self._fail(job_id, worker_id, state["stage"], e.message)

        except Exception as e:
            self._log_error(self.TASK_NAME, e)
            return self._fail(job_id, worker_id, state["stage"], GENERIC_FAILURE)

    def _fail(self, job_id: str, worker_id: str, stage: PipelineStage, message: str) -> Optional[str]:
        try:
            self.job_queue.fail(job_id, worker_id, stage, message)
        except OwnershipLostError:
            logger.warning(f"[Pipeline] job={job_id} could not be marked failed: ownership lost")
            return None
        return PipelineStage.FAILED.value

    def _advance(self, job_id: str, worker_id: str, state: dict, target: PipelineStage, **fields):
        self.job_queue.transition(job_id, worker_id, state["stage"], target, **fields)
        state["stage"] = target

    # Stages

    def _execute(self, job_id: str, worker_id: str, state: dict) -> str:
        started = self.clock()
        job = self._load_job(job_id)
        job_settings = dict(job.settings or {})
        content_type = job.content_type

        # Preprocess: reload the reference snapshot and fetch the primary image
        self._advance(job_id, worker_id, state, PipelineStage.PREPROCESS)
        resolved = ResolvedReferences.from_snapshot(job.references or [], bool(job.is_kit_scenario))
        if resolved.references and not resolved.has_usable_reference:
            raise ValidationError("Matched products have no registered image; fidelity cannot be guaranteed")

        reference_bytes = None
        reference_mime = "image/png"
        if resolved.primary is not None:
            reference_bytes = self.storage.get(resolved.primary.image_url)
            reference_mime = sniff_image_mime(reference_bytes)
        product_name = ", ".join(ref.name for ref in resolved.references)

        # Rewrite: deterministic prompt from the snapshot
        self._advance(job_id, worker_id, state, PipelineStage.REWRITE)
        brand = self._brand_context(job.tenant_id)
        base_prompt = compose_prompt(resolved, job_settings, brand, job.brief or "")
        self.job_queue.update_owned(
            job_id, worker_id, PipelineStage.REWRITE,
            final_prompt=base_prompt.text,
            negative_prompt=base_prompt.negative_prompt,
            fidelity_rules=base_prompt.fidelity_rules,
        )

        qa_enabled = bool(job_settings.get("qa_enabled", True))
        fallback_enabled = bool(job_settings.get("fallback_enabled", True))
        category = job_settings.get("category")
        threshold = threshold_for(category)
        variant_count = job.variant_count or job_settings.get("variation_count", 1)
        provider_errors: List[str] = []

        # A reclaimed job keeps its attempt count; every earlier attempt used up budget
        attempt = job.attempt or 0
        retries_used = attempt
        budget_spent = retries_used > self.max_retries
        if attempt:
            logger.warning(
                f"[Pipeline] job={job_id} resumed after {attempt} attempt(s), "
                f"{max(0, self.max_retries - retries_used)} retr(ies) left"
            )

        while True:
            if budget_spent:
                budget_spent = False
                self._advance(job_id, worker_id, state, PipelineStage.QA_SELECT)
            else:
                attempt += 1
                strict = attempt > 1
                self._advance(job_id, worker_id, state, PipelineStage.GENERATE_CANDIDATES,
                              attempt=attempt, retry_count=retries_used)
                logger.info(f"[Pipeline] job={job_id} attempt={attempt} strict={strict} variants={variant_count}")

                produced = 0
                for provider_id in job.providers or []:
                    adapter = self.registry.get(provider_id)
                    use_reference = reference_bytes is not None and adapter.supports_reference
                    for variation in range(1, variant_count + 1):
                        self._check_deadline(job_id, started)
                        prompt = compose_prompt(resolved, job_settings, brand, job.brief or "",
                                                strict=strict, variation=variation)
                        variant_index = self.candidates.next_variant_index(job_id)
                        request = SubmitRequest(
                            prompt=prompt.text,
                            negative_prompt=prompt.negative_prompt,
                            reference_image=reference_bytes if use_reference else None,
                            reference_mime_type=reference_mime,
                            aspect_ratio=job_settings.get("aspect_ratio", "1:1"),
                            duration_seconds=job_settings.get("duration_seconds"),
                            job_id=job_id,
                            variant_index=variant_index,
                        )
                        try:
                            handle, asset = execute_attempt(adapter, request, sleep=self.sleep)
                        except ProviderError as e:
                            provider_errors.append(e.message)
                            logger.warning(
                                f"[Pipeline] job={job_id} provider={provider_id} variation={variation} failed: {e.message}"
                            )
                            self.job_queue.heartbeat(job_id, worker_id, PipelineStage.GENERATE_CANDIDATES)
                            continue

                        self.candidates.store(
                            job.tenant_id, job_id, attempt, variant_index, provider_id, asset, model=handle.model,
                            worker_id=worker_id, expected=PipelineStage.GENERATE_CANDIDATES,
                        )
                        produced += 1
                        self.job_queue.heartbeat(job_id, worker_id, PipelineStage.GENERATE_CANDIDATES)

                self._check_deadline(job_id, started)
                self._advance(job_id, worker_id, state, PipelineStage.QA_SELECT)
                logger.info(f"[Pipeline] job={job_id} attempt={attempt} produced {produced} candidate(s)")

            if qa_enabled:
                for candidate in self.candidates.list_for_job(job_id):
                    if candidate.is_fallback or candidate.qa_score is not None:
                        continue
                    self.scorer.score_candidate(
                        candidate, self.candidates, self.storage,
                        content_type=content_type,
                        reference=reference_bytes,
                        reference_mime_type=reference_mime,
                        overlay_text=job_settings.get("overlay_text"),
                        category=category,
                        product_name=product_name,
                    )
                    self.job_queue.heartbeat(job_id, worker_id, PipelineStage.QA_SELECT)

            generated = [c for c in self.candidates.list_for_job(job_id) if not c.is_fallback]
            scored = [
                ScoredCandidate(
                    candidate_id=c.id,
                    variant_index=c.variant_index,
                    score=c.qa_score,
                    passed=bool(c.qa_passed),
                    provider=c.provider,
                )
                for c in generated
            ]
            cost_cents = sum(estimate_cost(c.provider) for c in generated)
            outcome = decide(
                scored,
                qa_enabled=qa_enabled,
                retries_used=retries_used,
                max_retries=self.max_retries,
                fallback_enabled=fallback_enabled,
                threshold=threshold,
                attempts=attempt,
                last_provider_error=provider_errors[-1] if provider_errors else None,
            )
            metrics = {
                "duration_seconds": round(self.clock() - started, 2),
                "candidates": len(scored),
                "provider_errors": provider_errors[-10:],
                "cost_cents": cost_cents,
            }
            logger.info(
                f"[Pipeline] job={job_id} decision={outcome.decision.value} "
                f"best={outcome.summary.best_score} passed={outcome.summary.passed_count}"
            )

            if outcome.decision == Decision.SELECT:
                self._advance(
                    job_id, worker_id, state, PipelineStage.DONE,
                    final_candidate_id=outcome.selected.candidate_id,
                    qa_summary=outcome.summary.model_dump(),
                    fallback_used=False,
                    metrics=metrics,
                    cost_cents=cost_cents,
                )
                return PipelineStage.DONE.value

            if outcome.decision == Decision.RETRY:
                retries_used += 1
                self._advance(job_id, worker_id, state, PipelineStage.RETRY, retry_count=retries_used,
                              cost_cents=cost_cents)
                continue

            if outcome.decision == Decision.FALLBACK:
                self._advance(job_id, worker_id, state, PipelineStage.FALLBACK)
                asset = self.compositor.compose(resolved.references, job_settings, is_kit=resolved.is_kit_scenario)
                fallback = self.candidates.store(
                    job.tenant_id, job_id, attempt, self.candidates.next_variant_index(job_id),
                    "fallback", asset, model=asset.model, is_fallback=True,
                    worker_id=worker_id, expected=PipelineStage.FALLBACK,
                )
                self._advance(
                    job_id, worker_id, state, PipelineStage.DONE,
                    final_candidate_id=fallback.id,
                    qa_summary=outcome.summary.model_dump(),
                    fallback_used=True,
                    metrics=metrics,
                    cost_cents=cost_cents,
                )
                return PipelineStage.DONE.value

            self.job_queue.fail(
                job_id, worker_id, state["stage"], outcome.message,
                qa_summary=outcome.summary.model_dump(),
                metrics=metrics,
                cost_cents=cost_cents,
            )
            state["stage"] = PipelineStage.FAILED
            return PipelineStage.FAILED.value
