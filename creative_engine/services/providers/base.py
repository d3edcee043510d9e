"""
Provider Adapter Contract
Uniform submit / poll / fetch interface over external generation backends,
plus the bounded polling loop that drives one attempt.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from creative_engine.core.config import settings
from creative_engine.core.errors import ProviderError, ProviderTimeoutError
from creative_engine.workers.base import with_retry

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SubmitRequest:
    """One generation request for one variant."""
    prompt: str
    negative_prompt: str = ""
    reference_image: Optional[bytes] = None
    reference_mime_type: str = "image/png"
    aspect_ratio: str = "1:1"
    duration_seconds: Optional[int] = None
    job_id: str = ""
    variant_index: int = 1

    @property
    def is_edit(self) -> bool:
        return self.reference_image is not None


@dataclass
class AttemptHandle:
    provider_id: str
    external_id: str
    model: Optional[str] = None
    submitted_at: datetime = field(default_factory=datetime.utcnow)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PollResult:
    state: PollState
    result_location: Optional[str] = None
    error: Optional[str] = None


@dataclass
class GeneratedAsset:
    data: bytes
    mime_type: str
    model: Optional[str] = None


class ProviderAdapter(ABC):
    """
    Base class for generation providers.

    Subclasses declare which content type they produce and how they use a reference
    image. A provider with `requires_reference` cannot run in text-only mode.
    `cost_cents` is the estimated charge for one generated candidate.
    """

    provider_id: str = ""
    content_type: str = "image"
    supports_reference: bool = True
    requires_reference: bool = False
    cost_cents: int = 0

    @property
    def log_tag(self) -> str:
        return f"[Provider:{self.provider_id}]"

    def model_for(self, request: SubmitRequest) -> Optional[str]:
        return None

    @abstractmethod
    def submit(self, request: SubmitRequest) -> AttemptHandle:
        """Start a generation. Returns a handle used for polling."""

    @abstractmethod
    def poll_status(self, handle: AttemptHandle) -> PollResult:
        """Check a submitted generation once."""

    @abstractmethod
    def fetch_result(self, handle: AttemptHandle, location: str) -> GeneratedAsset:
        """Download the finished asset."""


def execute_attempt(
    adapter: ProviderAdapter,
    request: SubmitRequest,
    poll_interval: Optional[float] = None,
    max_polls: Optional[int] = None,
    transient_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[AttemptHandle, GeneratedAsset]:
    """
    Run one provider attempt: submit, poll until done, fetch.

    Each call is retried on transient errors. Polling stops after `max_polls` checks.

    Raises:
        ProviderError: provider rejected the request or reported failure
        ProviderTransientError: transient error persisted past the retry budget
        ProviderTimeoutError: polling budget exhausted
    """
    poll_interval = settings.PROVIDER_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
    max_polls = settings.PROVIDER_MAX_POLL_ATTEMPTS if max_polls is None else max_polls
    transient_retries = settings.PROVIDER_TRANSIENT_RETRIES if transient_retries is None else transient_retries
    retry_delay = settings.PROVIDER_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

    retrying = with_retry(max_retries=transient_retries, retry_delay=retry_delay, sleep=sleep)
    submit = retrying(adapter.submit)
    poll_status = retrying(adapter.poll_status)
    fetch_result = retrying(adapter.fetch_result)

    handle = submit(request)
    logger.info(
        f"{adapter.log_tag} job={request.job_id} variant={request.variant_index} "
        f"submitted ({'edit' if request.is_edit else 'text'} mode) id={handle.external_id}"
    )

    for poll in range(1, max_polls + 1):
        result = poll_status(handle)

        if result.state == PollState.SUCCEEDED:
            asset = fetch_result(handle, result.result_location)
            logger.info(
                f"{adapter.log_tag} job={request.job_id} variant={request.variant_index} "
                f"completed after {poll} poll(s), {len(asset.data)} bytes"
            )
            return handle, asset

        if result.state == PollState.FAILED:
            raise ProviderError(
                f"{adapter.provider_id} generation failed: {result.error or 'unknown error'}",
                provider_id=adapter.provider_id,
                details={"external_id": handle.external_id},
            )

        logger.debug(f"{adapter.log_tag} job={request.job_id} pending ({poll}/{max_polls})")
        sleep(poll_interval)

    raise ProviderTimeoutError(
        f"{adapter.provider_id} did not finish after {max_polls} status checks "
        f"({max_polls * poll_interval:.0f}s)",
        provider_id=adapter.provider_id,
        details={"external_id": handle.external_id},
    )
