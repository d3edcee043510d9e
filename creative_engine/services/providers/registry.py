"""
Provider Registry
Maps provider ids to adapter classes and checks request compatibility.
"""

import logging
from typing import Callable, Dict, List, Optional, Type

from creative_engine.core.config import settings
from creative_engine.core.credentials import CredentialResolver
from creative_engine.core.errors import ValidationError
from creative_engine.services.providers.base import ProviderAdapter
from creative_engine.services.providers.fal import FalKlingImageToVideoProvider, FalVeoTextToVideoProvider
from creative_engine.services.providers.gemini import GeminiImageProvider
from creative_engine.services.providers.veo import VeoVideoProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Type[ProviderAdapter]] = {
    GeminiImageProvider.provider_id: GeminiImageProvider,
    VeoVideoProvider.provider_id: VeoVideoProvider,
    FalKlingImageToVideoProvider.provider_id: FalKlingImageToVideoProvider,
    FalVeoTextToVideoProvider.provider_id: FalVeoTextToVideoProvider,
}

# Credential key each adapter needs
CREDENTIAL_KEYS = {
    GeminiImageProvider.provider_id: "GEMINI_API_KEY",
    VeoVideoProvider.provider_id: "GEMINI_API_KEY",
    FalKlingImageToVideoProvider.provider_id: "FAL_API_KEY",
    FalVeoTextToVideoProvider.provider_id: "FAL_API_KEY",
}


def estimate_cost(provider_id: str) -> int:
    """Estimated cents charged for one candidate from `provider_id`; 0 for local composition."""
    if provider_id in settings.PROVIDER_COST_CENTS:
        return settings.PROVIDER_COST_CENTS[provider_id]
    adapter_cls = PROVIDERS.get(provider_id)
    return adapter_cls.cost_cents if adapter_cls else 0


def validate_providers(provider_ids: List[str], content_type: str, has_reference: bool) -> List[str]:
    """
    Check requested providers against the registry.

    Returns the de-duplicated provider list in request order.

    Raises:
        ValidationError: unknown provider, wrong content type, or missing required reference
    """
    seen = []
    for provider_id in provider_ids:
        if provider_id in seen:
            continue
        adapter_cls = PROVIDERS.get(provider_id)
        if adapter_cls is None:
            raise ValidationError(
                f"Unknown provider '{provider_id}'. Available: {', '.join(sorted(PROVIDERS))}"
            )
        if adapter_cls.content_type != content_type:
            raise ValidationError(f"Provider '{provider_id}' cannot generate {content_type} content")
        if adapter_cls.requires_reference and not has_reference:
            raise ValidationError(f"Provider '{provider_id}' needs a product with a registered image")
        seen.append(provider_id)
    return seen


class ProviderRegistry:
    """Builds adapters with credentials resolved at build time."""

    def __init__(
        self,
        credentials: Optional[CredentialResolver] = None,
        factories: Optional[Dict[str, Callable[[], ProviderAdapter]]] = None,
    ):
        self.credentials = credentials or CredentialResolver()
        self._factories = factories
        self._adapters: Dict[str, ProviderAdapter] = {}

    def get(self, provider_id: str) -> ProviderAdapter:
        if provider_id not in self._adapters:
            if self._factories is not None:
                if provider_id not in self._factories:
                    raise ValidationError(f"Unknown provider '{provider_id}'")
                self._adapters[provider_id] = self._factories[provider_id]()
            else:
                adapter_cls = PROVIDERS.get(provider_id)
                if adapter_cls is None:
                    raise ValidationError(f"Unknown provider '{provider_id}'")
                api_key = self.credentials.get_secret(CREDENTIAL_KEYS[provider_id])
                self._adapters[provider_id] = adapter_cls(api_key=api_key)
        return self._adapters[provider_id]
