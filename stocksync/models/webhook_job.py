"""Durable webhook job queue models."""
import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from stocksync.utils.time import utcnow

from .base import Base


class WebhookJobStatus(str, enum.Enum):
    """Persisted job states.

    A job waiting for a retry is stored as ``QUEUED`` with a future ``run_at``.
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    DEAD = "dead"


class WebhookJob(Base):
    """A queued unit of work for one inbound webhook delivery."""

    __tablename__ = "webhook_jobs"
    __table_args__ = (
        Index("ix_webhook_jobs_status_run_at", "status", "run_at"),
    )

    webhook_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    topic: Mapped[str] = mapped_column(String(50), nullable=False)
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[WebhookJobStatus] = mapped_column(
        SqlEnum(
            WebhookJobStatus,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=WebhookJobStatus.QUEUED,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_error: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class DeadJob(Base):
    """Immutable archive of a job that exhausted its retry budget."""

    __tablename__ = "dead_jobs"
    __table_args__ = (Index("ix_dead_jobs_created_at", "created_at"),)

    webhook_job_id: Mapped[int | None] = mapped_column(
        ForeignKey("webhook_jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    webhook_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    topic: Mapped[str] = mapped_column(String(50), nullable=False)
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    error: Mapped[dict] = mapped_column(JSON, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
