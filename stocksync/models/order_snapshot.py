"""Denormalized order records kept for audit and reporting."""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class OrderSnapshot(Base):
    """Latest known state of an external order, upserted by external id."""

    __tablename__ = "order_snapshots"

    external_order_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    order_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel: Mapped[str] = mapped_column(String(32), nullable=False, default="shopify")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    financial_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fulfillment_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    line_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    raw_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    effects = relationship(
        "OrderInventoryEffect",
        back_populates="order_snapshot",
        cascade="all, delete-orphan",
        order_by="OrderInventoryEffect.id",
    )


class OrderInventoryEffect(Base):
    """A stock change produced for an order by one webhook delivery."""

    __tablename__ = "order_inventory_effects"

    order_snapshot_id: Mapped[int] = mapped_column(
        ForeignKey("order_snapshots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    webhook_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)

    order_snapshot = relationship("OrderSnapshot", back_populates="effects")
