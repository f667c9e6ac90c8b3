"""Audit trail helpers for webhook processing outcomes."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.orm import Session

from stocksync.models.webhook_event import WebhookLog
from stocksync.utils.time import utcnow

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = {
    "email",
    "contact_email",
    "phone",
    "first_name",
    "last_name",
    "address1",
    "address2",
    "zip",
    "browser_ip",
    "customer_locale",
}


class WebhookLogStatus:
    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"
    REJECTED = "rejected"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    SKIPPED_UNSUPPORTED_TOPIC = "skipped_unsupported_topic"


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key in {"email", "contact_email"}:
        text = str(value)
        if "@" in text:
            _, domain = text.split("@", 1)
            return f"***@{domain}"
        return "***"

    if key == "phone":
        stripped = str(value).replace(" ", "")
        if len(stripped) <= 4:
            return "***"
        return f"***{stripped[-4:]}"

    return "***"


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with customer PII masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS and not isinstance(value, (Mapping, list)):
                sanitized[key] = _mask_value(key, value)
            else:
                sanitized[key] = sanitize_payload_for_audit(value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_payload_for_audit(item) for item in data]

    return data


def log_webhook_event(
    db: Session,
    *,
    webhook_id: str | None,
    topic: str,
    shop: str,
    order_id: str | None,
    payload: Any,
    status: str,
    error: dict | None = None,
    commit: bool = True,
) -> WebhookLog:
    """Append one outcome record to ``webhook_logs``."""

    if not isinstance(payload, Mapping):
        payload = {"value": payload}
    entry = WebhookLog(
        webhook_id=webhook_id,
        topic=topic,
        shop=shop,
        order_id=order_id,
        payload=sanitize_payload_for_audit(payload),
        status=status,
        error=error,
        created_at=utcnow(),
    )
    db.add(entry)
    if commit:
        db.commit()
    logger.info(
        "WEBHOOK_AUDIT",
        extra={"webhook_id": webhook_id, "topic": topic, "shop": shop, "status": status},
    )
    return entry


__all__ = ["SENSITIVE_KEYS", "WebhookLogStatus", "sanitize_payload_for_audit", "log_webhook_event"]
