"""Schema package exports."""
from .jobs import DeadJobRead, ProcessJobResult, WebhookJobRead
from .shopify import (
    OrdersCancelledPayload,
    OrdersCreatePayload,
    RefundsCreatePayload,
    RejectedLineItem,
    ShopifyLineItem,
    ShopifyRefundLineItem,
    WebhookTopic,
)

__all__ = [
    "DeadJobRead",
    "ProcessJobResult",
    "WebhookJobRead",
    "OrdersCancelledPayload",
    "OrdersCreatePayload",
    "RefundsCreatePayload",
    "RejectedLineItem",
    "ShopifyLineItem",
    "ShopifyRefundLineItem",
    "WebhookTopic",
]
