"""
Application Configuration
Loads settings from environment variables.
"""

from typing import Dict, List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Creative Engine API"
    DEBUG: bool = False
    API_BASE_URL: str = "http://localhost:8000"  # Base URL for file serving

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./creative_engine.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # Image Generation (Gemini native image models)
    GEMINI_API_KEY: str = ""
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    # Higher fidelity model used when a product reference image is attached (edit mode)
    GEMINI_EDIT_MODEL: str = "gemini-3-pro-image-preview"
    # Vision model used by QA scoring
    GEMINI_VISION_MODEL: str = "gemini-2.5-pro"
    QA_VISION_ENABLED: bool = True

    # Video Generation (Veo via long-running operations)
    VEO_MODEL: str = "veo-3.1-generate-preview"

    # fal.ai queue API
    FAL_API_KEY: str = ""
    FAL_QUEUE_URL: str = "https://queue.fal.run"
    FAL_KLING_I2V_ENDPOINT: str = "fal-ai/kling-video/v2.6/pro/image-to-video"
    FAL_VEO_T2V_ENDPOINT: str = "fal-ai/veo3.1"

    # Storage - S3 settings (optional)
    S3_BUCKET: str = ""
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_REGION: str = "us-east-1"

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"
    USE_LOCAL_STORAGE: bool = True

    # Google Cloud Storage (for Cloud Run deployment)
    USE_GCS: bool = False
    GCS_BUCKET_ASSETS: str = "creative-engine-assets"
    GCP_PROJECT_ID: str = ""

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Worker pool
    WORKER_POOL_SIZE: int = 3
    QUEUE_SWEEP_INTERVAL_SECONDS: int = 30
    QUEUE_SWEEP_BATCH: int = 3
    JOB_TIMEOUT_GENERATION: int = 3600  # RQ hard timeout for one job run

    # Stale claim watchdog / job-level limits
    JOB_STALE_AFTER_MINUTES: int = 15
    JOB_MAX_RECLAIMS: int = 2
    JOB_MAX_RUNTIME_SECONDS: int = 1800

    # Provider polling
    PROVIDER_POLL_INTERVAL_SECONDS: float = 2.0
    PROVIDER_MAX_POLL_ATTEMPTS: int = 60
    PROVIDER_TRANSIENT_RETRIES: int = 3
    PROVIDER_RETRY_DELAY_SECONDS: float = 2.0
    PROVIDER_HTTP_TIMEOUT_SECONDS: float = 60.0
    # Per-candidate cost in cents, overriding the adapter estimate
    PROVIDER_COST_CENTS: Dict[str, int] = {}
    # Cost per stored candidate in cents, overriding the adapter estimate
    PROVIDER_COST_CENTS: Dict[str, int] = {}

    # Pipeline
    PIPELINE_MAX_RETRIES: int = 1
    MAX_VARIATIONS: int = 4
    KIT_MARKERS: List[str] = ["kit"]

    # QA scoring
    QA_PASS_THRESHOLDS: Dict[str, float] = {"default": 0.6}
    QA_WEIGHT_SIMILARITY: float = 0.5
    QA_WEIGHT_LEGIBILITY: float = 0.3
    QA_WEIGHT_TEMPORAL: float = 0.2

    # Fallback composition
    FALLBACK_SCENES_DIR: str = ""

    @field_validator('GEMINI_API_KEY', 'FAL_API_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('QA_PASS_THRESHOLDS')
    @classmethod
    def check_thresholds(cls, v):
        """Thresholds are scores, so they must lie in [0, 1]."""
        for category, threshold in v.items():
            if not 0.0 <= threshold <= 1.0:
                raise ValueError(f"QA threshold for '{category}' must be within [0, 1]")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
