"""
Catalog Models
Read-only catalog, brand context and credential tables consumed by the pipeline.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, JSON, Boolean
from sqlalchemy.orm import relationship

from creative_engine.core.database import Base


class Product(Base):
    """Catalog product."""

    __tablename__ = "catalog_products"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)
    status = Column(String, default="active", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    images = relationship(
        "ProductImage", back_populates="product", order_by="ProductImage.sort_order"
    )


class ProductImage(Base):
    """Catalog product image."""

    __tablename__ = "catalog_product_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String, ForeignKey("catalog_products.id"), nullable=False, index=True)
    url = Column(String, nullable=False)
    is_primary = Column(Boolean, default=False)
    sort_order = Column(Integer, default=0)

    product = relationship("Product", back_populates="images")


class BrandContext(Base):
    """Per-tenant brand guidelines snapshot."""

    __tablename__ = "tenant_brand_contexts"

    tenant_id = Column(String, primary_key=True)
    visual_style_guidelines = Column(Text, nullable=True)
    tone_of_voice = Column(Text, nullable=True)
    banned_claims = Column(JSON, default=list)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PlatformCredential(Base):
    """Credential override store. Takes precedence over environment settings."""

    __tablename__ = "platform_credentials"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
