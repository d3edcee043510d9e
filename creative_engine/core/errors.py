"""
Pipeline Error Taxonomy
Every error carries a short, user-facing message; raw provider output goes to `details`.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for generation pipeline errors."""

    def __init__(self, message: str, retryable: bool = False, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details or {}


class ValidationError(PipelineError):
    """Request cannot be processed as given (e.g. product has no image). No provider is called."""


class ProviderError(PipelineError):
    """Provider rejected the request or reported the generation as failed."""

    def __init__(self, message: str, provider_id: str = "", details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)
        self.provider_id = provider_id


class ProviderTransientError(ProviderError):
    """Network failure, rate limit or 5xx. Retried within the same attempt."""

    def __init__(self, message: str, provider_id: str = "", details: Optional[dict] = None):
        super().__init__(message, provider_id=provider_id, details=details)
        self.retryable = True


class ProviderTimeoutError(ProviderError):
    """Polling budget exhausted without the provider completing."""


class StorageError(PipelineError):
    """Upload or download against platform storage failed."""


class CompositionError(PipelineError):
    """Fallback composition could not be produced."""


class JobTimeoutError(PipelineError):
    """Job exceeded its wall-clock budget."""


class OwnershipLostError(PipelineError):
    """The worker no longer owns the job (reclaimed or already terminal)."""


__all__ = [
    "PipelineError",
    "ValidationError",
    "ProviderError",
    "ProviderTransientError",
    "ProviderTimeoutError",
    "StorageError",
    "CompositionError",
    "JobTimeoutError",
    "OwnershipLostError",
]
