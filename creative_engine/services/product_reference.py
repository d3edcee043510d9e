"""
Product Reference Resolver
Turns request text (or an explicit product id) into reference snapshots for generation.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import List, Optional

from creative_engine.core.config import settings
from creative_engine.core.errors import ValidationError
from creative_engine.models.catalog import Product
from creative_engine.services.catalog import CatalogService

logger = logging.getLogger(__name__)


@dataclass
class ProductReference:
    """Read-only snapshot of a catalog product at request time."""
    id: str
    name: str
    image_url: Optional[str] = None
    is_kit: bool = False
    sku: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        return bool(self.image_url)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ProductReference":
        return cls(
            id=data["id"],
            name=data["name"],
            image_url=data.get("image_url"),
            is_kit=bool(data.get("is_kit")),
            sku=data.get("sku"),
        )


@dataclass
class ResolvedReferences:
    references: List[ProductReference] = field(default_factory=list)
    is_kit_scenario: bool = False

    @property
    def usable(self) -> List[ProductReference]:
        return [ref for ref in self.references if ref.is_usable]

    @property
    def has_usable_reference(self) -> bool:
        return bool(self.usable)

    @property
    def primary(self) -> Optional[ProductReference]:
        usable = self.usable
        return usable[0] if usable else None

    @classmethod
    def from_snapshot(cls, references: List[dict], is_kit_scenario: bool = False) -> "ResolvedReferences":
        return cls(
            references=[ProductReference.from_dict(ref) for ref in references or []],
            is_kit_scenario=is_kit_scenario,
        )


def pick_reference_image(product: Product) -> Optional[str]:
    """Primary image first, else the lowest sort order."""
    images = [img for img in (product.images or []) if img.url]
    if not images:
        return None
    primary = [img for img in images if img.is_primary]
    if primary:
        return primary[0].url
    return min(images, key=lambda img: (img.sort_order or 0, img.id or 0)).url


def is_kit_name(name: str) -> bool:
    lowered = (name or "").lower()
    return any(marker.lower() in lowered for marker in settings.KIT_MARKERS)


def to_reference(product: Product) -> ProductReference:
    return ProductReference(
        id=product.id,
        name=product.name,
        image_url=pick_reference_image(product),
        is_kit=is_kit_name(product.name),
        sku=product.sku,
    )


class ProductReferenceResolver:
    """Resolves product references for a generation request."""

    def __init__(self, catalog: CatalogService):
        self.catalog = catalog

    def resolve(self, tenant_id: str, text: str = "", product_id: Optional[str] = None) -> ResolvedReferences:
        """
        Resolve references from an explicit product id or from free text.

        Raises:
            ValidationError: unknown explicit product, or products matched but none has an image
        """
        if product_id:
            product = self.catalog.find_product(tenant_id, product_id)
            if not product:
                raise ValidationError(f"Product '{product_id}' was not found in the catalog")
            products = [product]
        else:
            products = self.catalog.search_products(tenant_id, text)

        references = [to_reference(p) for p in products]
        resolved = ResolvedReferences(
            references=references,
            is_kit_scenario=any(ref.is_kit for ref in references) or len(references) > 1,
        )

        if references and not resolved.has_usable_reference:
            names = ", ".join(ref.name for ref in references)
            raise ValidationError(
                f"Product(s) {names} found but none has a registered image; "
                f"register the image first to guarantee fidelity",
                details={"product_ids": [ref.id for ref in references]},
            )

        logger.info(
            f"[References] tenant={tenant_id} matched={len(references)} "
            f"usable={len(resolved.usable)} kit={resolved.is_kit_scenario}"
        )
        return resolved
