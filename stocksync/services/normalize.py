"""Topic-agnostic view of the stock effects carried by a webhook payload."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from stocksync.schemas.shopify import (
    OrdersCancelledPayload,
    OrdersCreatePayload,
    RefundsCreatePayload,
    RejectedLineItem,
    ShopifyVariantRef,
    WebhookTopic,
)


@dataclass(frozen=True)
class NormalizedEffect:
    """Line item reduced to what identity resolution and stock need.

    ``error`` is set for a line item that could not be read; the applier
    records it as a failure instead of moving stock.
    """

    variant_id: int | None
    sku: str | None
    quantity: int
    error: str | None = None


@dataclass(frozen=True)
class NormalizedWebhookWork:
    topic: WebhookTopic
    order_id: str | None
    effects: list[NormalizedEffect] = field(default_factory=list)


_DIRECTIONS: dict[WebhookTopic, int] = {
    WebhookTopic.ORDERS_CREATE: -1,
    WebhookTopic.ORDERS_CANCELLED: 1,
    WebhookTopic.REFUNDS_CREATE: 1,
}


def _effect(line_item: ShopifyVariantRef | None, quantity: int) -> NormalizedEffect:
    return NormalizedEffect(
        variant_id=line_item.variant_id if line_item else None,
        sku=line_item.sku if line_item else None,
        quantity=quantity,
    )


def _rejected(item: RejectedLineItem) -> NormalizedEffect:
    return NormalizedEffect(variant_id=item.variant_id, sku=item.sku, quantity=0, error=item.reason)


def _order_work(parsed: OrdersCreatePayload) -> NormalizedWebhookWork:
    effects = []
    for item in parsed.line_items:
        if isinstance(item, RejectedLineItem):
            effects.append(_rejected(item))
        elif item.quantity > 0:
            effects.append(_effect(item, item.quantity))
    return NormalizedWebhookWork(topic=parsed.topic, order_id=parsed.order_id, effects=effects)


def _refund_work(parsed: RefundsCreatePayload) -> NormalizedWebhookWork:
    effects = []
    for rli in parsed.refund_line_items:
        if isinstance(rli, RejectedLineItem):
            effects.append(_rejected(rli))
        elif rli.quantity > 0:
            effects.append(_effect(rli.line_item, rli.quantity))
    return NormalizedWebhookWork(topic=parsed.topic, order_id=parsed.order_id, effects=effects)


_NORMALIZERS: dict[WebhookTopic, Callable[[Any], NormalizedWebhookWork]] = {
    WebhookTopic.ORDERS_CREATE: lambda payload: _order_work(OrdersCreatePayload.from_raw(payload)),
    WebhookTopic.ORDERS_CANCELLED: lambda payload: _order_work(OrdersCancelledPayload.from_raw(payload)),
    WebhookTopic.REFUNDS_CREATE: lambda payload: _refund_work(RefundsCreatePayload.from_raw(payload)),
}


def normalize_webhook_work(topic: WebhookTopic | str, payload: Any) -> NormalizedWebhookWork:
    """Map a raw payload to its order id and positive-quantity effects.

    Never raises for malformed payloads; missing or invalid line item arrays
    normalize to an empty effect list, and a line item with a positive but
    unreadable quantity becomes an effect carrying ``error``. Raises
    ``UnsupportedTopicError`` for a topic outside ``WebhookTopic``.
    """

    return _NORMALIZERS[WebhookTopic.parse(topic)](payload)


def inventory_direction(topic: WebhookTopic | str) -> int:
    """Return -1 when stock leaves (new order) and +1 when it comes back."""

    return _DIRECTIONS[WebhookTopic.parse(topic)]


__all__ = [
    "NormalizedEffect",
    "NormalizedWebhookWork",
    "normalize_webhook_work",
    "inventory_direction",
]
