"""ORM models package."""
from .base import Base
from .inventory import (
    InventoryConflict,
    InventoryLevel,
    Product,
    ShopifyVariantMap,
    WebhookInventoryEffect,
)
from .order_snapshot import OrderInventoryEffect, OrderSnapshot
from .webhook_event import ProcessedWebhook, WebhookLog, WebhookRateLimit
from .webhook_job import DeadJob, WebhookJob, WebhookJobStatus

__all__ = [
    "Base",
    "DeadJob",
    "InventoryConflict",
    "InventoryLevel",
    "OrderInventoryEffect",
    "OrderSnapshot",
    "ProcessedWebhook",
    "Product",
    "ShopifyVariantMap",
    "WebhookInventoryEffect",
    "WebhookJob",
    "WebhookJobStatus",
    "WebhookLog",
    "WebhookRateLimit",
]
