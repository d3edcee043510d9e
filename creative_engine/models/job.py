"""
Generation Job Model
Database models for generation jobs and their stage log.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, JSON, Boolean
from sqlalchemy.orm import relationship

from creative_engine.core.database import Base


class PipelineStage(str, Enum):
    """
    Job status values, in pipeline order.

    The job status column holds one of these values. Only RETRY may lead back to an
    earlier stage (GENERATE_CANDIDATES).
    """
    QUEUED = "queued"
    GENERATING = "generating"
    PREPROCESS = "preprocess"
    REWRITE = "rewrite"
    GENERATE_CANDIDATES = "generate_candidates"
    QA_SELECT = "qa_select"
    RETRY = "retry"
    FALLBACK = "fallback"
    DONE = "done"
    FAILED = "failed"

    @property
    def description(self) -> str:
        return STAGE_DESCRIPTIONS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.DONE, PipelineStage.FAILED)


STAGE_DESCRIPTIONS = {
    PipelineStage.QUEUED: "Waiting in queue",
    PipelineStage.GENERATING: "Claimed by a worker",
    PipelineStage.PREPROCESS: "Preparing product references",
    PipelineStage.REWRITE: "Composing generation prompt",
    PipelineStage.GENERATE_CANDIDATES: "Generating variations",
    PipelineStage.QA_SELECT: "Scoring quality",
    PipelineStage.RETRY: "Retrying with strict fidelity",
    PipelineStage.FALLBACK: "Composing fallback asset",
    PipelineStage.DONE: "Completed",
    PipelineStage.FAILED: "Failed",
}

# Progress order; FAILED is reported at the index of the last stage entered.
STAGE_ORDER = [
    PipelineStage.QUEUED,
    PipelineStage.GENERATING,
    PipelineStage.PREPROCESS,
    PipelineStage.REWRITE,
    PipelineStage.GENERATE_CANDIDATES,
    PipelineStage.QA_SELECT,
    PipelineStage.RETRY,
    PipelineStage.FALLBACK,
    PipelineStage.DONE,
]

ACTIVE_STAGES = [
    PipelineStage.GENERATING,
    PipelineStage.PREPROCESS,
    PipelineStage.REWRITE,
    PipelineStage.GENERATE_CANDIDATES,
    PipelineStage.QA_SELECT,
    PipelineStage.RETRY,
    PipelineStage.FALLBACK,
]

# Allowed forward edges. Every non-terminal stage may also move to FAILED.
TRANSITIONS = {
    PipelineStage.QUEUED: {PipelineStage.GENERATING},
    PipelineStage.GENERATING: {PipelineStage.PREPROCESS},
    PipelineStage.PREPROCESS: {PipelineStage.REWRITE},
    # A resumed job whose attempts are used up goes straight to selection
    PipelineStage.REWRITE: {PipelineStage.GENERATE_CANDIDATES, PipelineStage.QA_SELECT},
    PipelineStage.GENERATE_CANDIDATES: {PipelineStage.QA_SELECT},
    PipelineStage.QA_SELECT: {PipelineStage.RETRY, PipelineStage.FALLBACK, PipelineStage.DONE},
    PipelineStage.RETRY: {PipelineStage.GENERATE_CANDIDATES},
    PipelineStage.FALLBACK: {PipelineStage.DONE},
    PipelineStage.DONE: set(),
    PipelineStage.FAILED: set(),
}


def can_transition(current: PipelineStage, target: PipelineStage) -> bool:
    if current.is_terminal:
        return False
    if target == PipelineStage.FAILED:
        return True
    return target in TRANSITIONS[current]


class GenerationJob(Base):
    """Creative generation job."""

    __tablename__ = "generation_jobs"

    id = Column(String, primary_key=True)  # gen_xxxx format
    tenant_id = Column(String, nullable=False, index=True)
    content_type = Column(String, nullable=False)

    # Request
    providers = Column(JSON, default=list)
    settings = Column(JSON, default=dict)  # Validated, versioned settings snapshot
    brief = Column(Text, nullable=True)
    product_id = Column(String, nullable=True)  # Explicit product, if given at intake

    # Resolved references (ProductReference snapshots)
    references = Column(JSON, default=list)
    is_kit_scenario = Column(Boolean, default=False)

    # Prompt
    final_prompt = Column(Text, nullable=True)
    negative_prompt = Column(Text, nullable=True)
    fidelity_rules = Column(JSON, default=list)

    # Status
    status = Column(String, default=PipelineStage.QUEUED.value, index=True)
    variant_count = Column(Integer, default=1)
    attempt = Column(Integer, default=0)
    retry_count = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)
    fallback_used = Column(Boolean, default=False)
    qa_summary = Column(JSON, nullable=True)
    metrics = Column(JSON, default=dict)
    cost_cents = Column(Integer, default=0)  # Estimated provider spend

    # Claim
    worker_id = Column(String, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    heartbeat_at = Column(DateTime, nullable=True)
    reclaim_count = Column(Integer, default=0)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    candidates = relationship(
        "Candidate", back_populates="job", order_by="Candidate.variant_index"
    )
    stages = relationship(
        "PipelineStageRecord", back_populates="job", order_by="PipelineStageRecord.id"
    )


class PipelineStageRecord(Base):
    """Append-only log of stages entered by a job. Used for progress reporting only."""

    __tablename__ = "generation_job_stages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String, ForeignKey("generation_jobs.id"), nullable=False, index=True)
    stage = Column(String, nullable=False)
    attempt = Column(Integer, default=0)
    entered_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("GenerationJob", back_populates="stages")
