"""Health check endpoint."""
from __future__ import annotations

import logging

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from stocksync.config import Settings, get_settings
from stocksync.core.runtime_state import is_worker_scheduler_active
from stocksync.db import get_session_factory
from stocksync.services.job_store import JobStore

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _db_status(db: Session) -> str:
    """Return 'ok' if the DB is reachable, 'error' otherwise."""

    try:
        db.execute(text("SELECT 1"))
        return "ok"
    except Exception:  # noqa: BLE001
        logger.exception("DB health check failed")
        return "error"


def _expected_migration_head() -> str | None:
    try:
        config = Config("alembic.ini")
        script = ScriptDirectory.from_config(config)
        return script.get_current_head()
    except Exception:  # noqa: BLE001
        logger.exception("Failed to load Alembic head revision")
        return None


def _migrations_status(db: Session) -> str:
    expected_head = _expected_migration_head()
    try:
        current = db.execute(text("SELECT version_num FROM alembic_version")).scalar()
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.info("alembic_version table not readable")
        return "unknown"
    if expected_head is None:
        return "unknown"
    return "up_to_date" if current == expected_head else "out_of_date"


def _queue_counts(db: Session, settings: Settings) -> dict[str, int] | None:
    try:
        return JobStore(db, settings).queue_counts()
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Queue stats unavailable")
        return None


@router.get("", summary="Health check")
def healthcheck(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    """Report database reachability, queue depth and worker configuration."""

    db = session_factory()
    try:
        db_status = _db_status(db)
        db_ok = db_status == "ok"
        migrations_status = _migrations_status(db) if db_ok else "unknown"
        queue = _queue_counts(db, settings) if db_ok else None
    finally:
        db.close()

    return {
        "status": "ok" if db_ok else "degraded",
        "db_ok": db_ok,
        "db_status": db_status,
        "migrations_status": migrations_status,
        "shopify_webhook_configured": bool(settings.shopify_webhook_secret),
        "processor_secret_configured": bool(settings.webhook_processor_secret),
        "worker_config_enabled": bool(settings.WORKER_ENABLED),
        "worker_scheduler_running": is_worker_scheduler_active(),
        "queue": queue,
    }
