"""Shopify request builders shared by the tests."""
import base64
import hashlib
import hmac
import json
from typing import Any
from uuid import uuid4

SHOPIFY_SECRET = "test-shopify-secret"
CRON_SECRET = "test-cron-secret"


def sign_shopify_body(body: bytes, secret: str = SHOPIFY_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def shopify_headers(
    body: bytes,
    *,
    topic: str = "orders/create",
    webhook_id: str | None = None,
    shop: str = "demo.myshopify.com",
    ip: str | None = None,
) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": shop,
        "X-Shopify-Hmac-Sha256": sign_shopify_body(body),
        "X-Shopify-Webhook-Id": webhook_id or f"wh-{uuid4().hex}",
    }
    if ip is not None:
        headers["X-Forwarded-For"] = ip
    return headers


def order_payload(order_id: int = 1001, line_items: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": order_id,
        "order_number": 1001,
        "email": "buyer@example.com",
        "financial_status": "paid",
        "fulfillment_status": None,
        "total_price": "19.98",
        "currency": "GBP",
        "customer": {"first_name": "Ada", "last_name": "Lovelace", "email": "buyer@example.com"},
        "line_items": line_items or [],
    }
    payload.update(extra)
    return payload


def encode(payload: Any) -> bytes:
    return json.dumps(payload).encode("utf-8")
