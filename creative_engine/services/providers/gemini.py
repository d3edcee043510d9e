"""
Gemini Image Provider
Native Gemini image generation (text-to-image, and edit mode with a product reference).

generate_content is synchronous, so submit already holds the result; polling
completes on the first check.
"""

import logging
import uuid
from typing import Dict, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from creative_engine.core.config import settings
from creative_engine.core.errors import ProviderError, ProviderTransientError
from creative_engine.services.providers.base import (
    AttemptHandle,
    GeneratedAsset,
    PollResult,
    PollState,
    ProviderAdapter,
    SubmitRequest,
)

logger = logging.getLogger(__name__)

INLINE_PREFIX = "inline:"


def map_genai_error(error: Exception, provider_id: str) -> ProviderError:
    """Rate limits and 5xx are transient; any other API error is a provider rejection."""
    code = getattr(error, "code", None)
    message = getattr(error, "message", None) or str(error)
    if isinstance(error, genai_errors.ServerError) or code == 429 or "RESOURCE_EXHAUSTED" in str(error):
        return ProviderTransientError(
            f"{provider_id} is temporarily unavailable", provider_id=provider_id,
            details={"code": code, "error": message},
        )
    return ProviderError(
        f"{provider_id} rejected the request: {message}", provider_id=provider_id,
        details={"code": code},
    )


def build_client(api_key: Optional[str]) -> genai.Client:
    if not api_key:
        raise ProviderError("GEMINI_API_KEY is not configured", provider_id="gemini")
    return genai.Client(api_key=api_key)


class GeminiImageProvider(ProviderAdapter):
    """Gemini native image model."""

    provider_id = "gemini-image"
    content_type = "image"
    supports_reference = True
    requires_reference = False
    cost_cents = 2

    def __init__(self, client: Optional[genai.Client] = None, api_key: Optional[str] = None):
        self._client = client
        self._api_key = api_key
        self._results: Dict[str, GeneratedAsset] = {}

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = build_client(self._api_key or settings.GEMINI_API_KEY)
        return self._client

    def model_for(self, request: SubmitRequest) -> str:
        # Edit mode uses the higher fidelity model
        return settings.GEMINI_EDIT_MODEL if request.is_edit else settings.GEMINI_IMAGE_MODEL

    def _build_contents(self, request: SubmitRequest) -> list:
        if not request.is_edit:
            return [request.prompt]
        instruction = (
            "REFERENCE-BASED PRODUCT GENERATION\n\n"
            "The attached image is the REAL product. Place this EXACT product in the scene below "
            "without redrawing, relabeling or recoloring it.\n\n"
            f"{request.prompt}\n\n"
            f"AVOID: {request.negative_prompt}"
        )
        return [
            types.Part.from_bytes(data=request.reference_image, mime_type=request.reference_mime_type),
            instruction,
        ]

    def submit(self, request: SubmitRequest) -> AttemptHandle:
        model = self.model_for(request)
        config = types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"] if request.is_edit else ["IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=request.aspect_ratio),
        )

        try:
            response = self.client.models.generate_content(
                model=model,
                contents=self._build_contents(request),
                config=config,
            )
        except genai_errors.APIError as e:
            raise map_genai_error(e, self.provider_id)

        handle = AttemptHandle(provider_id=self.provider_id, external_id=uuid.uuid4().hex, model=model)
        image_bytes, mime_type = self._extract_image(response)
        if image_bytes is None:
            finish_reason = "unknown"
            if getattr(response, "candidates", None):
                finish_reason = str(response.candidates[0].finish_reason)
            handle.extra["error"] = f"no image returned (finish reason: {finish_reason})"
        else:
            self._results[handle.external_id] = GeneratedAsset(data=image_bytes, mime_type=mime_type, model=model)
        return handle

    @staticmethod
    def _extract_image(response):
        parts = getattr(response, "parts", None)
        if not parts and getattr(response, "candidates", None):
            content = response.candidates[0].content
            parts = content.parts if content else None
        for part in parts or []:
            if part.inline_data is not None and part.inline_data.data:
                return part.inline_data.data, part.inline_data.mime_type or "image/png"
        return None, None

    def poll_status(self, handle: AttemptHandle) -> PollResult:
        if handle.external_id in self._results:
            return PollResult(state=PollState.SUCCEEDED, result_location=f"{INLINE_PREFIX}{handle.external_id}")
        return PollResult(state=PollState.FAILED, error=handle.extra.get("error", "no image returned"))

    def fetch_result(self, handle: AttemptHandle, location: str) -> GeneratedAsset:
        key = location[len(INLINE_PREFIX):] if location.startswith(INLINE_PREFIX) else location
        asset = self._results.pop(key, None)
        if asset is None:
            raise ProviderError(f"{self.provider_id} result is no longer available", provider_id=self.provider_id)
        return asset
