# Generation provider adapters
from creative_engine.services.providers.base import (
    PollState,
    SubmitRequest,
    AttemptHandle,
    PollResult,
    GeneratedAsset,
    ProviderAdapter,
    execute_attempt,
)
from creative_engine.services.providers.registry import PROVIDERS, ProviderRegistry, estimate_cost, validate_providers

__all__ = [
    "PollState",
    "SubmitRequest",
    "AttemptHandle",
    "PollResult",
    "GeneratedAsset",
    "ProviderAdapter",
    "execute_attempt",
    "PROVIDERS",
    "ProviderRegistry",
    "estimate_cost",
    "validate_providers",
]
