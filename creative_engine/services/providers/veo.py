"""
Veo Video Provider
Text-to-video and image-to-video through Veo long-running operations.
"""

import logging
from typing import Any, Dict, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from creative_engine.core.config import settings
from creative_engine.core.errors import ProviderError
from creative_engine.services.providers.base import (
    AttemptHandle,
    GeneratedAsset,
    PollResult,
    PollState,
    ProviderAdapter,
    SubmitRequest,
)
from creative_engine.services.providers.gemini import build_client, map_genai_error

logger = logging.getLogger(__name__)

# Veo renders landscape or portrait only
VEO_ASPECT_RATIOS = {"16:9": "16:9", "9:16": "9:16", "1:1": "9:16"}


class VeoVideoProvider(ProviderAdapter):
    """Veo through the Gemini API."""

    provider_id = "veo-video"
    content_type = "video"
    supports_reference = True
    requires_reference = False
    cost_cents = 60

    def __init__(self, client: Optional[genai.Client] = None, api_key: Optional[str] = None):
        self._client = client
        self._api_key = api_key
        self._operations: Dict[str, Any] = {}
        self._videos: Dict[str, Any] = {}

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = build_client(self._api_key or settings.GEMINI_API_KEY)
        return self._client

    def model_for(self, request: SubmitRequest) -> str:
        return settings.VEO_MODEL

    def submit(self, request: SubmitRequest) -> AttemptHandle:
        config = types.GenerateVideosConfig(
            aspect_ratio=VEO_ASPECT_RATIOS.get(request.aspect_ratio, "9:16"),
            number_of_videos=1,
            negative_prompt=request.negative_prompt or None,
            duration_seconds=request.duration_seconds,
        )
        image = None
        if request.is_edit:
            image = types.Image(image_bytes=request.reference_image, mime_type=request.reference_mime_type)

        try:
            operation = self.client.models.generate_videos(
                model=settings.VEO_MODEL,
                prompt=request.prompt,
                image=image,
                config=config,
            )
        except genai_errors.APIError as e:
            raise map_genai_error(e, self.provider_id)

        handle = AttemptHandle(provider_id=self.provider_id, external_id=operation.name, model=settings.VEO_MODEL)
        self._operations[handle.external_id] = operation
        return handle

    def poll_status(self, handle: AttemptHandle) -> PollResult:
        operation = self._operations.get(handle.external_id)
        if operation is None:
            return PollResult(state=PollState.FAILED, error="operation handle lost")

        try:
            operation = self.client.operations.get(operation)
        except genai_errors.APIError as e:
            raise map_genai_error(e, self.provider_id)
        self._operations[handle.external_id] = operation

        if not operation.done:
            return PollResult(state=PollState.PENDING)
        if operation.error:
            error = operation.error
            message = error.get("message", error) if isinstance(error, dict) else error
            return PollResult(state=PollState.FAILED, error=str(message))

        videos = operation.response.generated_videos if operation.response else None
        if not videos:
            return PollResult(state=PollState.FAILED, error="operation finished without a video (filtered)")

        self._videos[handle.external_id] = videos[0].video
        return PollResult(state=PollState.SUCCEEDED, result_location=handle.external_id)

    def fetch_result(self, handle: AttemptHandle, location: str) -> GeneratedAsset:
        video = self._videos.get(location)
        if video is None:
            raise ProviderError(f"{self.provider_id} result is no longer available", provider_id=self.provider_id)

        try:
            data = self.client.files.download(file=video)
        except genai_errors.APIError as e:
            raise map_genai_error(e, self.provider_id)

        if not data:
            data = getattr(video, "video_bytes", None)
        if not data:
            raise ProviderError(f"{self.provider_id} returned an empty video", provider_id=self.provider_id)

        self._videos.pop(location, None)
        self._operations.pop(handle.external_id, None)
        return GeneratedAsset(data=data, mime_type=getattr(video, "mime_type", None) or "video/mp4", model=handle.model)
