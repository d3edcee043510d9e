# Pydantic schemas package
from creative_engine.schemas.generation import (
    GenerationSettings, ImageGenerationSettings, VideoGenerationSettings,
    GenerationRequest, GenerationResponse, ProcessQueueResponse
)
from creative_engine.schemas.job import (
    JobStatus, QASummary, CandidateResponse, JobResponse, JobListResponse, FinalAsset, JobProgress
)

__all__ = [
    "GenerationSettings", "ImageGenerationSettings", "VideoGenerationSettings",
    "GenerationRequest", "GenerationResponse", "ProcessQueueResponse",
    "JobStatus", "QASummary", "CandidateResponse", "JobResponse", "JobListResponse",
    "FinalAsset", "JobProgress",
]
