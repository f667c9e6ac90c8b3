import pytest

from stocksync.core.runtime_state import set_worker_scheduler_active


@pytest.mark.anyio("asyncio")
async def test_healthcheck(client):
    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["db_ok"] is True
    assert payload["db_status"] == "ok"
    assert payload["migrations_status"] in {"up_to_date", "out_of_date", "unknown"}
    assert payload["shopify_webhook_configured"] is True
    assert payload["processor_secret_configured"] is True
    assert payload["worker_config_enabled"] is False
    assert payload["worker_scheduler_running"] is False
    assert payload["queue"] == {"queued": 0, "processing": 0, "succeeded": 0, "dead": 0, "dead_letters": 0}


@pytest.mark.anyio("asyncio")
async def test_health_reports_scheduler_flag(client):
    set_worker_scheduler_active(True)
    try:
        payload = (await client.get("/health")).json()
    finally:
        set_worker_scheduler_active(False)

    assert payload["worker_scheduler_running"] is True


@pytest.mark.anyio("asyncio")
async def test_health_status_degraded_when_db_status_error(monkeypatch, client):
    from stocksync.routers import health as health_module

    monkeypatch.setattr(health_module, "_db_status", lambda db: "error")

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"
    assert payload["migrations_status"] == "unknown"
    assert payload["queue"] is None
