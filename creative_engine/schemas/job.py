"""
Job Schemas
Pydantic models for job, candidate and progress responses.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel

from creative_engine.models.job import PipelineStage as JobStatus


class QASummary(BaseModel):
    """Outcome of quality scoring for a job."""
    best_score: Optional[float] = None
    total_evaluated: int = 0
    passed_count: int = 0
    selected_variant_index: Optional[int] = None
    fallback_used: bool = False
    attempts: int = 0
    threshold: Optional[float] = None


class CandidateResponse(BaseModel):
    """Schema for a generated candidate."""
    id: int
    job_id: str
    attempt: int
    variant_index: int
    provider: str
    model: Optional[str]
    storage_url: str
    mime_type: str
    byte_size: int
    width: Optional[int]
    height: Optional[int]
    qa_score: Optional[float]
    qa_passed: Optional[bool]
    qa_details: Optional[Dict[str, Any]] = None
    is_fallback: bool = False
    is_final: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class JobResponse(BaseModel):
    """Schema for job response."""
    id: str
    tenant_id: str
    content_type: str
    providers: List[str] = []
    settings: Dict[str, Any] = {}
    brief: Optional[str]
    references: List[Dict[str, Any]] = []
    is_kit_scenario: bool = False
    final_prompt: Optional[str]
    status: str
    variant_count: int
    attempt: int
    retry_count: int
    error_message: Optional[str]
    fallback_used: bool = False
    qa_summary: Optional[QASummary] = None
    metrics: Dict[str, Any] = {}
    cost_cents: int = 0
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total: int


class FinalAsset(BaseModel):
    candidate_id: int
    url: str
    mime_type: str
    variant_index: int
    is_fallback: bool


class JobProgress(BaseModel):
    """Flat progress signal for polling clients."""
    job_id: str
    status: JobStatus
    current_stage_index: int
    total_stages: int
    description: str
    attempt: int = 0
    retry_count: int = 0
    error_message: Optional[str] = None
    fallback_used: bool = False
    qa_summary: Optional[QASummary] = None
    final_asset: Optional[FinalAsset] = None


__all__ = [
    "JobStatus",
    "QASummary",
    "CandidateResponse",
    "JobResponse",
    "JobListResponse",
    "FinalAsset",
    "JobProgress",
]
