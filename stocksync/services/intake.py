"""Inbound Shopify webhook handling: verify, de-duplicate, enqueue."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import HTTPException, Request, status
from sqlalchemy.orm import Session

from stocksync.config import Settings
from stocksync.schemas.shopify import WebhookTopic
from stocksync.services.job_store import JobStore
from stocksync.services.normalize import normalize_webhook_work
from stocksync.services.rate_limit import rate_limit_check
from stocksync.services.verification import verify_shopify_hmac
from stocksync.utils.audit import WebhookLogStatus, log_webhook_event
from stocksync.utils.errors import UnsupportedTopicError, error_response

logger = logging.getLogger(__name__)

UNKNOWN_SHOP = "unknown"
UNKNOWN_IP = "unknown"
_MAX_RAW_BODY_AUDIT = 10_000


def first_forwarded_ip(request: Request) -> str:
    """Return the first ``X-Forwarded-For`` hop, else ``"unknown"``."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return UNKNOWN_IP


def _raw_text(raw_body: bytes) -> str:
    return raw_body.decode("utf-8", errors="replace")[:_MAX_RAW_BODY_AUDIT]


async def handle_shopify_webhook(request: Request, db: Session, settings: Settings) -> dict[str, bool]:
    """Accept one Shopify order/refund delivery.

    Unsupported topics and duplicate deliveries are acknowledged with 200 so
    Shopify stops retrying them. Accepted deliveries are logged and queued;
    inventory is changed later by the worker.
    """

    secret = settings.shopify_webhook_secret
    if not secret:
        logger.error("Shopify webhook received but SHOPIFY_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_response("WEBHOOK_SECRET_NOT_CONFIGURED", "SHOPIFY_WEBHOOK_SECRET not configured."),
        )

    ip = first_forwarded_ip(request)
    if not rate_limit_check(db, ip, settings.WEBHOOK_RATE_LIMIT, settings.WEBHOOK_RATE_WINDOW_SECONDS):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=error_response("RATE_LIMITED", "Rate limit exceeded."),
        )

    webhook_id = request.headers.get("x-shopify-webhook-id")
    topic_header = request.headers.get("x-shopify-topic")
    shop = request.headers.get("x-shopify-shop-domain") or UNKNOWN_SHOP
    hmac_header = request.headers.get("x-shopify-hmac-sha256")
    raw_body = await request.body()

    try:
        topic = WebhookTopic.parse(topic_header)
    except UnsupportedTopicError:
        log_webhook_event(
            db,
            webhook_id=webhook_id,
            topic=(topic_header or "")[:100],
            shop=shop,
            order_id=None,
            payload={"note": "unsupported topic", "topic": topic_header, "raw_body": _raw_text(raw_body)},
            status=WebhookLogStatus.SKIPPED_UNSUPPORTED_TOPIC,
        )
        logger.info("Ignoring unsupported Shopify topic", extra={"topic": topic_header, "shop": shop})
        return {"ok": True}

    if not verify_shopify_hmac(raw_body, hmac_header, secret):
        log_webhook_event(
            db,
            webhook_id=webhook_id,
            topic=topic.value,
            shop=shop,
            order_id=None,
            payload={"note": "invalid hmac", "raw_body": _raw_text(raw_body)},
            status=WebhookLogStatus.REJECTED,
        )
        logger.warning("Shopify webhook signature invalid", extra={"shop": shop, "topic": topic.value})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("WEBHOOK_SIGNATURE_INVALID", "Invalid signature."),
        )

    if not webhook_id:
        log_webhook_event(
            db,
            webhook_id=None,
            topic=topic.value,
            shop=shop,
            order_id=None,
            payload={"note": "missing webhook id", "raw_body": _raw_text(raw_body)},
            status=WebhookLogStatus.REJECTED,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("MISSING_WEBHOOK_ID", "Missing X-Shopify-Webhook-Id."),
        )

    try:
        payload: Any = json.loads(raw_body)
    except ValueError:
        log_webhook_event(
            db,
            webhook_id=webhook_id,
            topic=topic.value,
            shop=shop,
            order_id=None,
            payload={"note": "invalid json", "raw_body": _raw_text(raw_body)},
            status=WebhookLogStatus.REJECTED,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("INVALID_JSON", "Invalid JSON."),
        )

    store = JobStore(db, settings)
    if not store.record_processed_webhook(webhook_id=webhook_id, topic=topic.value, shop=shop, commit=False):
        log_webhook_event(
            db,
            webhook_id=webhook_id,
            topic=topic.value,
            shop=shop,
            order_id=None,
            payload=payload,
            status=WebhookLogStatus.SKIPPED_DUPLICATE,
        )
        logger.info("Duplicate Shopify delivery acknowledged", extra={"webhook_id": webhook_id})
        return {"ok": True}

    # Marker, received log and job share one transaction.
    order_id = normalize_webhook_work(topic, payload).order_id
    try:
        log_webhook_event(
            db,
            webhook_id=webhook_id,
            topic=topic.value,
            shop=shop,
            order_id=order_id,
            payload=payload,
            status=WebhookLogStatus.RECEIVED,
            commit=False,
        )
        store.enqueue(webhook_id=webhook_id, topic=topic, shop=shop, order_id=order_id, payload=payload, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to enqueue Shopify webhook", extra={"webhook_id": webhook_id, "topic": topic.value})
        raise
    return {"ok": True}


__all__ = ["handle_shopify_webhook", "first_forwarded_ip"]
