from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from stocksync import db
from stocksync.config import AppInfo, get_settings
from stocksync.core.logging import get_logger, setup_logging
from stocksync.core.runtime_state import set_worker_scheduler_active
import stocksync.models  # registers the tables
from stocksync.routers import get_api_router
from stocksync.services.worker import process_webhook_jobs_once
from stocksync.utils.errors import error_response

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None
ALLOWED_CREATE_ENV = {"dev", "local", "test"}


def _current_settings():
    return get_settings()


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    """Configure optional metrics and error reporting."""

    runtime_settings = _current_settings()
    if runtime_settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware)
        fastapi_app.add_route("/metrics", handle_metrics)

    if runtime_settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=runtime_settings.SENTRY_DSN, traces_sample_rate=0.2)


def _assert_webhook_secrets(settings: Any) -> None:
    """Fail-fast when webhook secrets are missing in non-dev environments."""

    env_lower = settings.app_env.lower()
    missing = [
        name
        for name, value in (
            ("SHOPIFY_WEBHOOK_SECRET", settings.shopify_webhook_secret),
            ("WEBHOOK_PROCESSOR_SECRET", settings.webhook_processor_secret),
        )
        if not value
    ]
    if not missing:
        return
    if env_lower not in ALLOWED_CREATE_ENV:
        logger.error(
            "Webhook secrets are missing; configure them before startup.",
            extra={"env": settings.app_env, "missing": missing},
        )
        raise RuntimeError(f"Missing webhook secrets in {settings.app_env}: {', '.join(missing)}")
    logger.warning(
        "Webhook secrets are not configured; allowed in dev only.",
        extra={"env": settings.app_env, "missing": missing},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = _current_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("Application startup", extra={"env": settings.app_env})
    _assert_webhook_secrets(settings)

    db.init_engine()
    env_lower = settings.app_env.lower()
    if settings.ALLOW_DB_CREATE_ALL and env_lower in ALLOWED_CREATE_ENV:
        logger.warning(
            "Running Base.metadata.create_all() because APP_ENV=%s and ALLOW_DB_CREATE_ALL=True",
            settings.app_env,
        )
        db.create_all()
    else:
        logger.info(
            "Skipping create_all(); use Alembic migrations. APP_ENV=%s, ALLOW_DB_CREATE_ALL=%s",
            settings.app_env,
            settings.ALLOW_DB_CREATE_ALL,
        )

    # In-process polling is for single-instance setups; run scripts/run_worker.py otherwise.
    set_worker_scheduler_active(False)
    global scheduler
    if settings.WORKER_ENABLED:
        scheduler = AsyncIOScheduler()
        scheduler.start()
        scheduler.add_job(
            process_webhook_jobs_once,
            "interval",
            seconds=settings.WORKER_POLL_SECONDS,
            id="process-webhook-jobs",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        set_worker_scheduler_active(True)
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            scheduler = None
        set_worker_scheduler_active(False)
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_configure_middlewares(app)
app.include_router(get_api_router())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


__all__ = ["app"]
