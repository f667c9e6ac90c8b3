"""Schemas for queue inspection and worker results."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from stocksync.models.webhook_job import WebhookJobStatus


class WebhookJobRead(BaseModel):
    id: int
    webhook_id: str
    topic: str
    shop: str
    order_id: str | None
    status: WebhookJobStatus
    attempts: int
    max_attempts: int
    run_at: datetime
    locked_by: str | None
    last_error: dict | None

    model_config = ConfigDict(from_attributes=True)


class DeadJobRead(BaseModel):
    id: int
    webhook_job_id: int | None
    webhook_id: str | None
    topic: str
    shop: str
    order_id: str | None
    error: dict
    attempts: int
    last_attempt_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProcessJobResult(BaseModel):
    """Counters returned by one worker batch."""

    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    dead: int = 0
