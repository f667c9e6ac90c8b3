"""Product catalogue and stock ledger models."""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from stocksync.utils.time import utcnow

from .base import Base


def _new_product_id() -> str:
    return str(uuid4())


class Product(Base):
    """Internal product record used for identity resolution."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_product_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    primary_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supplier_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    barcodes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class ShopifyVariantMap(Base):
    """Maps a storefront variant id to an internal product."""

    __tablename__ = "shopify_variant_map"

    shopify_variant_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )


class InventoryLevel(Base):
    """On-hand stock for a product."""

    __tablename__ = "inventory_levels"

    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    quantity_on_hand: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class InventoryConflict(Base):
    """A delta that would have driven stock below zero and was clamped."""

    __tablename__ = "inventory_conflicts"
    __table_args__ = (Index("ix_inventory_conflicts_created_at", "created_at"),)

    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attempted_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    result_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class WebhookInventoryEffect(Base):
    """Idempotency ledger: one row per applied delta key."""

    __tablename__ = "webhook_inventory_effects"
    __table_args__ = (Index("ix_webhook_inventory_effects_webhook_id", "webhook_id"),)

    idempotency_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    webhook_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
