import pytest

from stocksync.schemas.shopify import INVALID_QUANTITY_REASON, WebhookTopic
from stocksync.services.normalize import (
    NormalizedEffect,
    inventory_direction,
    normalize_webhook_work,
)
from stocksync.utils.errors import UnsupportedTopicError


def test_orders_create_keeps_positive_quantities_only():
    payload = {
        "id": 5001,
        "line_items": [
            {"variant_id": 11, "sku": "ABC", "quantity": 2},
            {"variant_id": 12, "sku": "ZERO", "quantity": 0},
            {"variant_id": 13, "sku": "NEG", "quantity": -1},
            {"variant_id": None, "sku": "ONLY-SKU", "quantity": 1},
        ],
    }

    work = normalize_webhook_work("orders/create", payload)

    assert work.topic is WebhookTopic.ORDERS_CREATE
    assert work.order_id == "5001"
    assert work.effects == [
        NormalizedEffect(variant_id=11, sku="ABC", quantity=2),
        NormalizedEffect(variant_id=None, sku="ONLY-SKU", quantity=1),
    ]


def test_orders_cancelled_uses_order_line_items():
    work = normalize_webhook_work(
        WebhookTopic.ORDERS_CANCELLED,
        {"id": "77", "line_items": [{"variant_id": 1, "quantity": 3}]},
    )

    assert work.order_id == "77"
    assert work.effects == [NormalizedEffect(variant_id=1, sku=None, quantity=3)]


def test_refund_reads_nested_line_item_and_order_id():
    payload = {
        "id": 9,
        "order_id": 5001,
        "refund_line_items": [
            {"quantity": 1, "line_item": {"variant_id": 11, "sku": "ABC", "quantity": 5}},
            {"quantity": 0, "line_item": {"variant_id": 12}},
            {"quantity": 2},
        ],
    }

    work = normalize_webhook_work("refunds/create", payload)

    assert work.order_id == "5001"
    assert work.effects == [
        NormalizedEffect(variant_id=11, sku="ABC", quantity=1),
        NormalizedEffect(variant_id=None, sku=None, quantity=2),
    ]


@pytest.mark.parametrize(
    "payload",
    [None, "not-a-dict", [], {"id": 1}, {"id": 1, "line_items": "nope"}, {"line_items": None}],
)
def test_malformed_payloads_normalize_to_no_effects(payload):
    work = normalize_webhook_work("orders/create", payload)

    assert work.effects == []


def test_order_id_missing_or_invalid_is_none():
    assert normalize_webhook_work("orders/create", {"line_items": []}).order_id is None
    assert normalize_webhook_work("orders/create", {"id": "gid://shopify/Order/1"}).order_id is None
    assert normalize_webhook_work("refunds/create", {"id": 3}).order_id is None


def test_unreadable_quantity_becomes_failing_effect():
    work = normalize_webhook_work(
        "orders/create",
        {
            "id": 1,
            "line_items": [
                "garbage",
                {"variant_id": 4, "sku": "HALF", "quantity": 2.5},
                {"sku": "NAN", "quantity": "abc"},
                {"sku": "OK", "quantity": "2"},
            ],
        },
    )

    assert work.effects == [
        NormalizedEffect(variant_id=4, sku="HALF", quantity=0, error=INVALID_QUANTITY_REASON),
        NormalizedEffect(variant_id=None, sku="OK", quantity=2),
    ]


def test_fields_unrelated_to_stock_do_not_drop_the_line():
    work = normalize_webhook_work(
        "orders/create",
        {
            "id": 1,
            "line_items": [
                {"id": "li-1", "variant_id": 1, "sku": "A", "quantity": 2, "title": 123, "price": {"amount": "9.99"}},
                {"variant_id": "gid://shopify/ProductVariant/1", "sku": "A", "quantity": 1},
                {"variant_id": True, "sku": ["A"], "quantity": None},
            ],
        },
    )

    assert work.effects == [
        NormalizedEffect(variant_id=1, sku="A", quantity=2),
        NormalizedEffect(variant_id=None, sku="A", quantity=1),
    ]


def test_refund_with_unreadable_quantity_keeps_nested_identity():
    work = normalize_webhook_work(
        "refunds/create",
        {
            "order_id": 5,
            "refund_line_items": [
                {"quantity": 1.5, "line_item": {"variant_id": 9, "sku": "R", "quantity": "lots"}},
                {"quantity": 1, "line_item": "not-a-mapping"},
            ],
        },
    )

    assert work.effects == [
        NormalizedEffect(variant_id=9, sku="R", quantity=0, error=INVALID_QUANTITY_REASON),
        NormalizedEffect(variant_id=None, sku=None, quantity=1),
    ]


def test_numeric_sku_is_stringified():
    work = normalize_webhook_work("orders/create", {"id": 1, "line_items": [{"sku": 12345, "quantity": 1}]})

    assert work.effects[0].sku == "12345"


def test_unsupported_topic_raises():
    with pytest.raises(UnsupportedTopicError) as excinfo:
        normalize_webhook_work("products/update", {})
    assert excinfo.value.topic == "products/update"


def test_inventory_direction_per_topic():
    assert inventory_direction("orders/create") == -1
    assert inventory_direction("orders/cancelled") == 1
    assert inventory_direction(WebhookTopic.REFUNDS_CREATE) == 1
    with pytest.raises(UnsupportedTopicError):
        inventory_direction("checkouts/create")
