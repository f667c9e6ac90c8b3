"""Typed views over the Shopify webhook payloads handled by the pipeline.

Each supported topic has its own payload model. Parsing is lenient: fields
that do not move stock accept any value, a ``variant_id`` that is not an
integer falls back to SKU resolution, and a line item whose quantity cannot
be read is kept as a ``RejectedLineItem`` so the job fails on that line
instead of silently skipping it. Anything that is not a mapping parses as
an empty payload.
"""
from __future__ import annotations

import enum
import logging
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from stocksync.utils.errors import UnsupportedTopicError

logger = logging.getLogger(__name__)

INVALID_QUANTITY_REASON = "Invalid line item quantity"


class WebhookTopic(str, enum.Enum):
    """Storefront topics the reconciliation pipeline understands."""

    ORDERS_CREATE = "orders/create"
    ORDERS_CANCELLED = "orders/cancelled"
    REFUNDS_CREATE = "refunds/create"

    @classmethod
    def parse(cls, value: Any) -> "WebhookTopic":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedTopicError(value) from None


def _external_id(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip().isdigit():
        return value.strip()
    return None


def _positive_number(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


class ShopifyVariantRef(BaseModel):
    """Identity fields of a line item; never fails validation for a mapping."""

    model_config = ConfigDict(extra="ignore")

    id: Any = None
    variant_id: int | None = None
    sku: str | None = None
    title: Any = None
    price: Any = None

    @field_validator("variant_id", mode="before")
    @classmethod
    def _integer_variant(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    @field_validator("sku", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value
        return None


class ShopifyLineItem(ShopifyVariantRef):
    """One product/quantity pair of an order."""

    quantity: int = 0

    @field_validator("quantity", mode="before")
    @classmethod
    def _missing_quantity(cls, value: Any) -> Any:
        return 0 if value is None else value


class ShopifyRefundLineItem(BaseModel):
    """Refunded quantity wrapping the original order line item."""

    model_config = ConfigDict(extra="ignore")

    quantity: int = 0
    line_item: ShopifyVariantRef | None = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _missing_quantity(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("line_item", mode="before")
    @classmethod
    def _mapping_only(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class RejectedLineItem(BaseModel):
    """A line item with a positive but unusable quantity."""

    index: int
    variant_id: int | None = None
    sku: str | None = None
    reason: str = INVALID_QUANTITY_REASON


def _reject(index: int, entry: dict[str, Any], model: type[BaseModel]) -> RejectedLineItem:
    ref = entry.get("line_item") if model is ShopifyRefundLineItem else entry
    identity = ShopifyVariantRef.model_validate(ref if isinstance(ref, dict) else {})
    return RejectedLineItem(index=index, variant_id=identity.variant_id, sku=identity.sku)


def _parse_list(raw: Any, model: type[BaseModel]) -> list[Any]:
    if not isinstance(raw, list):
        return []
    parsed: list[Any] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            logger.warning("Skipping non-mapping line item", extra={"model": model.__name__, "index": index})
            continue
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError as exc:
            if not _positive_number(entry.get("quantity")):
                continue
            logger.warning(
                "Rejecting malformed line item",
                extra={"model": model.__name__, "index": index, "errors": exc.error_count()},
            )
            parsed.append(_reject(index, entry, model))
    return parsed


class OrdersCreatePayload(BaseModel):
    topic: ClassVar[WebhookTopic] = WebhookTopic.ORDERS_CREATE

    order_id: str | None = None
    line_items: list[ShopifyLineItem | RejectedLineItem] = []

    @classmethod
    def from_raw(cls, payload: Any) -> "OrdersCreatePayload":
        if not isinstance(payload, dict):
            return cls()
        return cls.model_construct(
            order_id=_external_id(payload.get("id")),
            line_items=_parse_list(payload.get("line_items"), ShopifyLineItem),
        )


class OrdersCancelledPayload(OrdersCreatePayload):
    topic: ClassVar[WebhookTopic] = WebhookTopic.ORDERS_CANCELLED


class RefundsCreatePayload(BaseModel):
    topic: ClassVar[WebhookTopic] = WebhookTopic.REFUNDS_CREATE

    refund_id: str | None = None
    order_id: str | None = None
    refund_line_items: list[ShopifyRefundLineItem | RejectedLineItem] = []

    @classmethod
    def from_raw(cls, payload: Any) -> "RefundsCreatePayload":
        if not isinstance(payload, dict):
            return cls()
        return cls.model_construct(
            refund_id=_external_id(payload.get("id")),
            order_id=_external_id(payload.get("order_id")),
            refund_line_items=_parse_list(payload.get("refund_line_items"), ShopifyRefundLineItem),
        )


__all__ = [
    "WebhookTopic",
    "ShopifyVariantRef",
    "ShopifyLineItem",
    "ShopifyRefundLineItem",
    "RejectedLineItem",
    "OrdersCreatePayload",
    "OrdersCancelledPayload",
    "RefundsCreatePayload",
    "INVALID_QUANTITY_REASON",
]
