"""Order snapshot writer: denormalized order copy plus its stock effects."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stocksync.models.order_snapshot import OrderInventoryEffect, OrderSnapshot
from stocksync.models.webhook_job import WebhookJob
from stocksync.schemas.shopify import WebhookTopic
from stocksync.services.inventory import AppliedEffect
from stocksync.services.normalize import NormalizedWebhookWork
from stocksync.utils.time import utcnow

logger = logging.getLogger(__name__)

_DECIMAL_QUANT = Decimal("0.01")


def _to_decimal(amount: Any) -> Decimal:
    """Parse a storefront money string; unparseable values become zero."""

    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")
    if not value.is_finite():
        return Decimal("0.00")
    return value.quantize(_DECIMAL_QUANT, rounding=ROUND_HALF_UP)


def _customer_name(customer: Any) -> str | None:
    if not isinstance(customer, dict):
        return None
    name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    return name or None


def _line_items(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [
        {
            "variant_id": item.get("variant_id"),
            "sku": item.get("sku"),
            "title": item.get("title"),
            "quantity": item.get("quantity"),
            "price": item.get("price"),
        }
        for item in raw
        if isinstance(item, dict)
    ]


def _apply_order_fields(
    snapshot: OrderSnapshot, payload: dict[str, Any], topic: WebhookTopic, default_currency: str
) -> None:
    customer = payload.get("customer")
    order_number = payload.get("order_number")
    snapshot.order_number = str(order_number) if order_number is not None else payload.get("name")
    snapshot.channel = "shopify"
    cancelled = bool(payload.get("cancelled_at")) or topic == WebhookTopic.ORDERS_CANCELLED
    snapshot.status = "cancelled" if cancelled else "active"
    snapshot.financial_status = payload.get("financial_status")
    snapshot.fulfillment_status = payload.get("fulfillment_status")
    snapshot.customer_email = payload.get("email") or (
        customer.get("email") if isinstance(customer, dict) else None
    )
    snapshot.customer_name = _customer_name(customer)
    snapshot.total_price = _to_decimal(payload.get("total_price"))
    snapshot.currency = payload.get("currency") or default_currency
    snapshot.line_items = _line_items(payload.get("line_items"))
    snapshot.raw_payload = payload


def _get_or_create_snapshot(db: Session, external_order_id: str) -> OrderSnapshot:
    stmt = (
        select(OrderSnapshot)
        .where(OrderSnapshot.external_order_id == external_order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    snapshot = db.scalars(stmt).one_or_none()
    if snapshot is not None:
        return snapshot
    try:
        with db.begin_nested():
            snapshot = OrderSnapshot(external_order_id=external_order_id, line_items=[])
            db.add(snapshot)
    except IntegrityError:
        snapshot = db.scalars(stmt).one()
    return snapshot


def save_order_snapshot(
    db: Session,
    *,
    job: WebhookJob,
    work: NormalizedWebhookWork,
    effects: Iterable[AppliedEffect],
    default_currency: str = "GBP",
    commit: bool = True,
) -> OrderSnapshot | None:
    """Upsert the order by external id and record this delivery's effects.

    Order events overwrite the order fields; refunds only attach their
    effects. Effects of a delivery replace any earlier rows written for the
    same delivery, so re-processing a job does not duplicate them.
    """

    if work.order_id is None:
        logger.warning("Skipping order snapshot without order id", extra={"webhook_id": job.webhook_id})
        return None

    snapshot = _get_or_create_snapshot(db, work.order_id)
    if work.topic in (WebhookTopic.ORDERS_CREATE, WebhookTopic.ORDERS_CANCELLED) and isinstance(job.payload, dict):
        _apply_order_fields(snapshot, job.payload, work.topic, default_currency)
    snapshot.processed_at = utcnow()
    db.flush()

    db.execute(
        delete(OrderInventoryEffect).where(
            OrderInventoryEffect.order_snapshot_id == snapshot.id,
            OrderInventoryEffect.webhook_id == job.webhook_id,
        )
    )
    for effect in effects:
        db.add(
            OrderInventoryEffect(
                order_snapshot_id=snapshot.id,
                webhook_id=job.webhook_id,
                product_id=effect.product_id,
                quantity_change=effect.quantity_change,
            )
        )
    if commit:
        db.commit()
    return snapshot


__all__ = ["save_order_snapshot"]
