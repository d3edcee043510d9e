"""
fal.ai Queue Providers
Submit / status / result flow of the fal.ai queue API, used for Kling image-to-video
and Veo 3.1 text-to-video.
"""

import base64
import logging
from abc import abstractmethod
from typing import Any, Dict, Optional

import httpx

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

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def extract_output_url(result: Dict[str, Any]) -> Optional[str]:
    """Find the output media URL in a fal result payload."""
    for key in ("video", "image"):
        value = result.get(key)
        if isinstance(value, dict) and value.get("url"):
            return value["url"]
    for key in ("videos", "images"):
        values = result.get(key)
        if isinstance(values, list) and values and isinstance(values[0], dict) and values[0].get("url"):
            return values[0]["url"]
    return None


class FalQueueProvider(ProviderAdapter):
    """Base adapter for a fal.ai queue endpoint."""

    endpoint: str = ""
    content_type = "video"

    def __init__(self, api_key: Optional[str] = None, endpoint: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.FAL_API_KEY
        if endpoint:
            self.endpoint = endpoint
        self.base_url = (base_url or settings.FAL_QUEUE_URL).rstrip("/")

    def model_for(self, request: SubmitRequest) -> str:
        return self.endpoint

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ProviderError("FAL_API_KEY is not configured", provider_id=self.provider_id)
        return {"Authorization": f"Key {self.api_key}", "Content-Type": "application/json"}

    def _request(self, method: str, url: str, payload: Optional[dict] = None, raw: bool = False):
        headers = self._headers()
        try:
            with httpx.Client(timeout=settings.PROVIDER_HTTP_TIMEOUT_SECONDS, follow_redirects=True) as client:
                if method == "POST":
                    response = client.post(url, json=payload, headers=headers)
                else:
                    response = client.get(url, headers=headers)
        except httpx.TransportError as e:
            raise ProviderTransientError(
                f"{self.provider_id} is unreachable", provider_id=self.provider_id, details={"error": str(e)}
            )

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise ProviderTransientError(
                f"{self.provider_id} is temporarily unavailable (HTTP {response.status_code})",
                provider_id=self.provider_id,
                details={"body": response.text[:500]},
            )
        if response.status_code >= 400:
            logger.error(f"{self.log_tag} HTTP {response.status_code}: {response.text[:500]}")
            raise ProviderError(
                f"{self.provider_id} rejected the request (HTTP {response.status_code})",
                provider_id=self.provider_id,
                details={"body": response.text[:500]},
            )

        if raw:
            return response.content
        try:
            return response.json()
        except ValueError:
            raise ProviderTransientError(
                f"{self.provider_id} returned an unreadable response", provider_id=self.provider_id,
                details={"body": response.text[:300]},
            )

    @abstractmethod
    def build_payload(self, request: SubmitRequest) -> Dict[str, Any]:
        """Endpoint-specific request body."""

    def submit(self, request: SubmitRequest) -> AttemptHandle:
        data = self._request("POST", f"{self.base_url}/{self.endpoint}", self.build_payload(request))
        request_id = data.get("request_id")
        if not request_id:
            raise ProviderError(f"{self.provider_id} did not return a request id", provider_id=self.provider_id)

        requests_url = f"{self.base_url}/{self.endpoint}/requests/{request_id}"
        return AttemptHandle(
            provider_id=self.provider_id,
            external_id=request_id,
            model=self.endpoint,
            extra={
                "status_url": data.get("status_url") or f"{requests_url}/status",
                "response_url": data.get("response_url") or requests_url,
            },
        )

    def poll_status(self, handle: AttemptHandle) -> PollResult:
        data = self._request("GET", handle.extra["status_url"])
        status = data.get("status")
        if status == "COMPLETED":
            if data.get("error"):
                return PollResult(state=PollState.FAILED, error=str(data["error"]))
            return PollResult(state=PollState.SUCCEEDED, result_location=handle.extra["response_url"])
        if status in ("FAILED", "ERROR", "CANCELLED"):
            return PollResult(state=PollState.FAILED, error=str(data.get("error") or status))
        return PollResult(state=PollState.PENDING)

    def fetch_result(self, handle: AttemptHandle, location: str) -> GeneratedAsset:
        result = self._request("GET", location)
        output_url = extract_output_url(result)
        if not output_url:
            raise ProviderError(f"{self.provider_id} result has no output file", provider_id=self.provider_id)

        data = self._request("GET", output_url, raw=True)
        mime_type = "video/mp4" if self.content_type == "video" else "image/png"
        media = result.get("video") or result.get("image") or {}
        if isinstance(media, dict) and media.get("content_type"):
            mime_type = media["content_type"]
        return GeneratedAsset(data=data, mime_type=mime_type, model=self.endpoint)


class FalKlingImageToVideoProvider(FalQueueProvider):
    """Kling image-to-video. The reference image is the first frame."""

    provider_id = "fal-kling-i2v"
    supports_reference = True
    requires_reference = True
    cost_cents = 60

    def __init__(self, api_key: Optional[str] = None, endpoint: Optional[str] = None, base_url: Optional[str] = None):
        super().__init__(api_key, endpoint or settings.FAL_KLING_I2V_ENDPOINT, base_url)

    def build_payload(self, request: SubmitRequest) -> Dict[str, Any]:
        if not request.is_edit:
            raise ProviderError(f"{self.provider_id} needs a product reference image", provider_id=self.provider_id)
        encoded = base64.b64encode(request.reference_image).decode()
        duration = request.duration_seconds or 5
        return {
            "prompt": request.prompt,
            "image_url": f"data:{request.reference_mime_type};base64,{encoded}",
            "duration": "10" if duration > 5 else "5",
            "negative_prompt": request.negative_prompt,
        }


class FalVeoTextToVideoProvider(FalQueueProvider):
    """Veo 3.1 text-to-video on fal. Prompt only."""

    provider_id = "fal-veo3-t2v"
    supports_reference = False
    requires_reference = False
    cost_cents = 80

    def __init__(self, api_key: Optional[str] = None, endpoint: Optional[str] = None, base_url: Optional[str] = None):
        super().__init__(api_key, endpoint or settings.FAL_VEO_T2V_ENDPOINT, base_url)

    def build_payload(self, request: SubmitRequest) -> Dict[str, Any]:
        return {
            "prompt": request.prompt,
            "negative_prompt": request.negative_prompt,
            "aspect_ratio": request.aspect_ratio if request.aspect_ratio in ("16:9", "9:16") else "9:16",
            "duration": f"{request.duration_seconds or 8}s",
        }
