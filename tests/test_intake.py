import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from stocksync.models import ProcessedWebhook, WebhookJob, WebhookLog, WebhookJobStatus

from shopify_helpers import encode, order_payload, shopify_headers


def _log_statuses(db_session) -> list[str]:
    db_session.rollback()
    return db_session.scalars(select(WebhookLog.status).order_by(WebhookLog.id)).all()


@pytest.mark.anyio
async def test_valid_delivery_is_logged_and_enqueued(client, db_session):
    body = encode(order_payload(1001, [{"variant_id": 1, "quantity": 1}]))

    response = await client.post(
        "/webhooks/shopify/orders", content=body, headers=shopify_headers(body, webhook_id="wh-ok")
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    job = db_session.scalars(select(WebhookJob)).one()
    assert job.webhook_id == "wh-ok"
    assert job.topic == "orders/create"
    assert job.shop == "demo.myshopify.com"
    assert job.order_id == "1001"
    assert job.status == WebhookJobStatus.QUEUED
    assert _log_statuses(db_session) == ["received"]


@pytest.mark.anyio
async def test_duplicate_delivery_is_acknowledged_once(client, db_session):
    body = encode(order_payload(1001))
    headers = shopify_headers(body, webhook_id="wh-dup")

    first = await client.post("/webhooks/shopify/orders", content=body, headers=headers)
    second = await client.post("/webhooks/shopify/orders", content=body, headers=headers)

    assert first.status_code == second.status_code == 200
    assert db_session.scalar(select(func.count()).select_from(WebhookJob)) == 1
    assert db_session.scalar(select(func.count()).select_from(ProcessedWebhook)) == 1
    assert _log_statuses(db_session) == ["received", "skipped_duplicate"]


@pytest.mark.anyio
async def test_unsupported_topic_is_acknowledged_before_signature_check(client, db_session):
    body = b"{}"
    headers = shopify_headers(body, topic="products/update")
    headers["X-Shopify-Hmac-Sha256"] = "bogus"

    response = await client.post("/webhooks/shopify/orders", content=body, headers=headers)

    assert response.status_code == 200
    assert db_session.scalar(select(func.count()).select_from(WebhookJob)) == 0
    entry = db_session.scalars(select(WebhookLog)).one()
    assert entry.status == "skipped_unsupported_topic"
    assert entry.topic == "products/update"


@pytest.mark.anyio
async def test_bad_signature_is_rejected(client, db_session):
    body = encode(order_payload(1001))
    headers = shopify_headers(body)
    headers["X-Shopify-Hmac-Sha256"] = "AAAA"

    response = await client.post("/webhooks/shopify/orders", content=body, headers=headers)

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "WEBHOOK_SIGNATURE_INVALID"
    assert db_session.scalar(select(func.count()).select_from(WebhookJob)) == 0
    assert _log_statuses(db_session) == ["rejected"]


@pytest.mark.anyio
async def test_missing_webhook_id_is_rejected(client, db_session):
    body = encode(order_payload(1001))
    headers = shopify_headers(body)
    del headers["X-Shopify-Webhook-Id"]

    response = await client.post("/webhooks/shopify/orders", content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "MISSING_WEBHOOK_ID"


@pytest.mark.anyio
async def test_invalid_json_is_rejected_after_signature_check(client, db_session):
    body = b"{not json"

    response = await client.post("/webhooks/shopify/orders", content=body, headers=shopify_headers(body))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_JSON"
    assert db_session.scalar(select(func.count()).select_from(ProcessedWebhook)) == 0


@pytest.mark.anyio
async def test_missing_secret_is_a_server_error(client, settings):
    settings.shopify_webhook_secret = None
    body = encode(order_payload(1001))

    response = await client.post("/webhooks/shopify/orders", content=body, headers=shopify_headers(body))

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "WEBHOOK_SECRET_NOT_CONFIGURED"


@pytest.mark.anyio
async def test_rate_limit_uses_first_forwarded_ip(client, settings):
    settings.WEBHOOK_RATE_LIMIT = 2
    body = encode(order_payload(1001))

    codes = []
    for _ in range(3):
        response = await client.post(
            "/webhooks/shopify/orders",
            content=body,
            headers=shopify_headers(body, ip="203.0.113.7, 10.0.0.1"),
        )
        codes.append(response.status_code)
    other = await client.post(
        "/webhooks/shopify/orders", content=body, headers=shopify_headers(body, ip="198.51.100.2")
    )

    assert codes == [200, 200, 429]
    assert other.status_code == 200


@pytest.mark.anyio
async def test_failed_enqueue_keeps_no_marker_so_retry_is_accepted(db_session, monkeypatch):
    from stocksync.main import app
    from stocksync.services.job_store import JobStore

    real_enqueue = JobStore.enqueue
    calls = {"count": 0}

    def _flaky_enqueue(self, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("queue table unavailable")
        return real_enqueue(self, **kwargs)

    monkeypatch.setattr(JobStore, "enqueue", _flaky_enqueue)
    body = encode(order_payload(1001, [{"variant_id": 1, "quantity": 1}]))
    headers = shopify_headers(body, webhook_id="wh-retry")

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        first = await client.post("/webhooks/shopify/orders", content=body, headers=headers)
        assert first.status_code == 500
        db_session.rollback()
        assert db_session.scalar(select(func.count()).select_from(ProcessedWebhook)) == 0
        assert db_session.scalar(select(func.count()).select_from(WebhookJob)) == 0

        second = await client.post("/webhooks/shopify/orders", content=body, headers=headers)

    assert second.status_code == 200
    db_session.rollback()
    assert db_session.scalars(select(WebhookJob.webhook_id)).all() == ["wh-retry"]
    assert db_session.scalar(select(func.count()).select_from(ProcessedWebhook)) == 1
    assert _log_statuses(db_session) == ["received"]
