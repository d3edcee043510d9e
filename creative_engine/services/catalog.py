"""
Catalog Service
Read-only access to the tenant product catalog and brand context.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from creative_engine.models.catalog import Product, BrandContext

logger = logging.getLogger(__name__)

# Words shorter than this carry no product identity ("kit", "de", "ml")
MIN_SIGNIFICANT_WORD_LENGTH = 4


@dataclass
class BrandSnapshot:
    """Brand guidelines snapshot embedded into prompts."""
    visual_style_guidelines: str = ""
    tone_of_voice: str = ""
    banned_claims: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.visual_style_guidelines or self.tone_of_voice or self.banned_claims)


def significant_words(name: str) -> List[str]:
    """Lowercased words of a product name long enough to identify it. Parentheses count as spaces."""
    cleaned = re.sub(r"[()]", " ", name.lower())
    return [word for word in cleaned.split() if len(word) >= MIN_SIGNIFICANT_WORD_LENGTH]


def match_products(products: List[Product], text: str) -> List[Product]:
    """
    Product name match against free text.

    A product matches when its full name appears in the text, or when at least
    max(2, ceil(n/2)) of its significant words do. Each product is checked both ways.
    """
    haystack = (text or "").lower()
    if not haystack.strip():
        return []

    matches = []
    for product in products:
        name = (product.name or "").lower()
        if name and name in haystack:
            matches.append(product)
            continue
        words = significant_words(product.name or "")
        if not words:
            continue
        required = max(2, math.ceil(len(words) / 2))
        hits = sum(1 for word in words if word in haystack)
        if hits >= required:
            matches.append(product)
    return matches


class CatalogService:
    """Catalog lookups scoped to a tenant."""

    def __init__(self, db: Session):
        self.db = db

    def find_product(self, tenant_id: str, product_id: str) -> Optional[Product]:
        return (
            self.db.query(Product)
            .filter(Product.tenant_id == tenant_id, Product.id == product_id)
            .first()
        )

    def active_products(self, tenant_id: str) -> List[Product]:
        return (
            self.db.query(Product)
            .filter(Product.tenant_id == tenant_id, Product.status == "active")
            .order_by(Product.name)
            .all()
        )

    def search_products(self, tenant_id: str, text: str) -> List[Product]:
        matches = match_products(self.active_products(tenant_id), text)
        logger.info(f"[Catalog] tenant={tenant_id} matched {len(matches)} product(s)")
        return matches

    def get_brand_context(self, tenant_id: str) -> Optional[BrandSnapshot]:
        row = self.db.query(BrandContext).filter(BrandContext.tenant_id == tenant_id).first()
        if not row:
            return None
        return BrandSnapshot(
            visual_style_guidelines=row.visual_style_guidelines or "",
            tone_of_voice=row.tone_of_voice or "",
            banned_claims=list(row.banned_claims or []),
        )
