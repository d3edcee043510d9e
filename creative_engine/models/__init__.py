# Database models package
from creative_engine.models.job import (
    GenerationJob,
    PipelineStageRecord,
    PipelineStage,
)
from creative_engine.models.candidate import Candidate
from creative_engine.models.catalog import Product, ProductImage, BrandContext, PlatformCredential

__all__ = [
    "GenerationJob",
    "PipelineStageRecord",
    "PipelineStage",
    "Candidate",
    "Product",
    "ProductImage",
    "BrandContext",
    "PlatformCredential",
]
