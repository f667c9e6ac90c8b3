"""Intake side persistence: de-duplication markers, audit log, rate limits."""
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stocksync.utils.time import utcnow

from .base import Base


class ProcessedWebhook(Base):
    """Marker inserted once per delivery id; a duplicate insert means "seen"."""

    __tablename__ = "processed_webhooks"

    webhook_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    topic: Mapped[str] = mapped_column(String(50), nullable=False)
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class WebhookLog(Base):
    """Append-only processing outcome record."""

    __tablename__ = "webhook_logs"
    __table_args__ = (
        Index("ix_webhook_logs_created_at", "created_at"),
        Index("ix_webhook_logs_webhook_id", "webhook_id"),
    )

    webhook_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    topic: Mapped[str] = mapped_column(String(100), nullable=False)
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    error: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class WebhookRateLimit(Base):
    """Fixed-window request counter per client IP."""

    __tablename__ = "webhook_rate_limits"
    __table_args__ = (
        UniqueConstraint("ip", "window_start", name="uq_webhook_rate_limits_ip_window"),
    )

    ip: Mapped[str] = mapped_column(String(64), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
