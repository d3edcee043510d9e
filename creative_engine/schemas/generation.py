"""
Generation Schemas
Closed, versioned generation settings and the intake request/response models.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from creative_engine.core.config import settings as app_settings
from creative_engine.core.paths import is_storage_url

Environment = Literal["studio", "bathroom", "bedroom", "kitchen", "gym", "outdoor", "office"]
Lighting = Literal["soft", "natural", "dramatic", "studio"]
Tone = Literal["premium", "minimal", "vibrant", "natural"]
EffectIntensity = Literal["low", "medium", "high"]
AspectRatio = Literal["1:1", "9:16", "16:9"]
FidelityMode = Literal["high", "medium", "low"]


class BaseGenerationSettings(BaseModel):
    """Settings shared by every content type. Unknown keys are rejected."""
    schema_version: Literal[1] = 1
    environment: Environment = "studio"
    lighting: Lighting = "soft"
    tone: Tone = "premium"
    effect_intensity: EffectIntensity = "medium"
    aspect_ratio: AspectRatio = "1:1"
    variation_count: int = Field(default=2, ge=1)
    qa_enabled: bool = True
    fallback_enabled: bool = True
    fidelity_mode: FidelityMode = "high"
    category: str = "default"
    overlay_text: Optional[str] = Field(default=None, max_length=120)
    background_url: Optional[str] = None

    @field_validator("variation_count")
    @classmethod
    def check_variation_count(cls, v):
        if v > app_settings.MAX_VARIATIONS:
            raise ValueError(f"variation_count must be at most {app_settings.MAX_VARIATIONS}")
        return v

    @field_validator("overlay_text", "background_url")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("background_url")
    @classmethod
    def check_background_url(cls, v):
        if v is not None and not is_storage_url(v):
            raise ValueError("background_url must be an uploaded asset under /files/")
        return v

    class Config:
        extra = "forbid"


class ImageGenerationSettings(BaseGenerationSettings):
    content_type: Literal["image"] = "image"


class VideoGenerationSettings(BaseGenerationSettings):
    content_type: Literal["video"] = "video"
    aspect_ratio: AspectRatio = "9:16"
    duration_seconds: int = Field(default=8, ge=4, le=10)


GenerationSettings = Annotated[
    Union[ImageGenerationSettings, VideoGenerationSettings],
    Field(discriminator="content_type"),
]


class GenerationRequest(BaseModel):
    """Schema for a generation request."""
    tenant_id: str = Field(min_length=1)
    providers: List[str] = Field(min_length=1)
    brief: str = ""
    product_id: Optional[str] = None
    settings: GenerationSettings

    @property
    def content_type(self) -> str:
        return self.settings.content_type

    class Config:
        extra = "forbid"


class GenerationResponse(BaseModel):
    """Schema for intake response."""
    job_id: str
    status: str
    message: str
    error: Optional[str] = None


class ProcessQueueResponse(BaseModel):
    dispatched: bool
    message: str
