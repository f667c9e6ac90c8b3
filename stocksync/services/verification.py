"""Signature and shared-secret checks for inbound requests."""
from __future__ import annotations

import base64
import hashlib
import hmac


def compute_shopify_hmac(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify_hmac(raw_body: bytes, hmac_header: str | None, secret: str) -> bool:
    """Compare the base64 HMAC-SHA256 of the raw body with the delivery header."""

    if not hmac_header:
        return False
    expected = compute_shopify_hmac(raw_body, secret)
    return hmac.compare_digest(expected.encode("ascii"), hmac_header.strip().encode("utf-8"))


def secrets_match(expected: str, provided: str | None) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


__all__ = ["compute_shopify_hmac", "verify_shopify_hmac", "secrets_match"]
