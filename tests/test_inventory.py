from sqlalchemy import func, select

from stocksync.models import InventoryConflict, InventoryLevel, Product, WebhookInventoryEffect, WebhookJob
from stocksync.services.identity import ProductResolver
from stocksync.services.inventory import (
    UNRESOLVED_REASON,
    AppliedEffect,
    InventoryEffectApplier,
    apply_inventory_delta,
    effect_idempotency_key,
)
from stocksync.services.normalize import NormalizedEffect, normalize_webhook_work


def _on_hand(db_session, product_id: str) -> int:
    db_session.rollback()
    return db_session.scalar(
        select(InventoryLevel.quantity_on_hand).where(InventoryLevel.product_id == product_id)
    )


def test_same_key_applies_once(db_session, make_product):
    product = make_product(quantity=10)

    first = apply_inventory_delta(db_session, "wh-1:0:v1", product.id, -2, {"topic": "orders/create"}, webhook_id="wh-1")
    second = apply_inventory_delta(db_session, "wh-1:0:v1", product.id, -2, {"topic": "orders/create"}, webhook_id="wh-1")

    assert first.applied is True
    assert first.old_quantity == 10
    assert first.new_quantity == 8
    assert second.applied is False
    assert second.delta == -2
    assert _on_hand(db_session, product.id) == 8
    assert db_session.scalar(select(func.count()).select_from(WebhookInventoryEffect)) == 1


def test_negative_result_is_clamped_and_recorded(db_session, make_product):
    product = make_product(quantity=1)

    result = apply_inventory_delta(db_session, "wh-2:0:v1", product.id, -3, {"order_id": "42"}, webhook_id="wh-2")

    assert result.clamped is True
    assert result.new_quantity == 0
    assert _on_hand(db_session, product.id) == 0
    conflict = db_session.scalars(select(InventoryConflict)).one()
    assert conflict.product_id == product.id
    assert conflict.attempted_delta == -3
    assert conflict.result_quantity == 0
    assert conflict.context["order_id"] == "42"
    assert conflict.context["old_quantity"] == 1


def test_missing_level_row_starts_at_zero(db_session):
    product = Product(name="fresh", primary_sku="FRESH", barcodes=[])
    db_session.add(product)
    db_session.commit()

    result = apply_inventory_delta(db_session, "wh-3:0:sFRESH", product.id, 4, webhook_id="wh-3")

    assert result.old_quantity == 0
    assert _on_hand(db_session, product.id) == 4


def test_idempotency_key_is_per_line_item():
    by_variant = NormalizedEffect(variant_id=7, sku="X", quantity=1)
    by_sku = NormalizedEffect(variant_id=None, sku=" Abc ", quantity=1)

    assert effect_idempotency_key("wh", 0, by_variant) == "wh:0:v7"
    assert effect_idempotency_key("wh", 1, by_variant) == "wh:1:v7"
    assert effect_idempotency_key("wh", 2, by_sku) == "wh:2:sabc"


def _job(payload: dict, topic: str = "orders/create", webhook_id: str = "wh-apply") -> WebhookJob:
    return WebhookJob(
        id=1,
        webhook_id=webhook_id,
        topic=topic,
        shop="demo.myshopify.com",
        order_id=str(payload.get("id")),
        payload=payload,
        attempts=1,
        max_attempts=8,
    )


def test_applier_collects_unresolved_items_and_applies_the_rest(db_session, make_product):
    product = make_product(quantity=5, variant_id=101)
    payload = {
        "id": 1,
        "line_items": [
            {"variant_id": 101, "quantity": 2},
            {"variant_id": 999, "sku": "MISSING", "quantity": 1},
        ],
    }
    job = _job(payload)

    outcome = InventoryEffectApplier(db_session, ProductResolver(db_session)).apply(
        job, normalize_webhook_work(job.topic, payload)
    )

    assert outcome.ok is False
    assert outcome.applied == [AppliedEffect(product.id, -2)]
    assert [f.as_dict() for f in outcome.failures] == [
        {"reason": UNRESOLVED_REASON, "variant_id": 999, "sku": "MISSING"}
    ]
    assert _on_hand(db_session, product.id) == 3


def test_applier_uses_positive_direction_for_refunds(db_session, make_product):
    product = make_product(quantity=0, primary_sku="SKU-R")
    payload = {"id": 5, "order_id": 1, "refund_line_items": [{"quantity": 2, "line_item": {"sku": "sku-r"}}]}
    job = _job(payload, topic="refunds/create", webhook_id="wh-refund")

    outcome = InventoryEffectApplier(db_session, ProductResolver(db_session)).apply(
        job, normalize_webhook_work(job.topic, payload)
    )

    assert outcome.ok is True
    assert outcome.applied == [AppliedEffect(product.id, 2)]
    assert _on_hand(db_session, product.id) == 2


def test_applier_rerun_does_not_double_apply(db_session, make_product):
    product = make_product(quantity=10, variant_id=5)
    payload = {"id": 1, "line_items": [{"variant_id": 5, "quantity": 4}]}
    job = _job(payload, webhook_id="wh-rerun")
    applier = InventoryEffectApplier(db_session, ProductResolver(db_session))

    applier.apply(job, normalize_webhook_work(job.topic, payload))
    again = applier.apply(job, normalize_webhook_work(job.topic, payload))

    assert again.applied == [AppliedEffect(product.id, -4)]
    assert _on_hand(db_session, product.id) == 6
