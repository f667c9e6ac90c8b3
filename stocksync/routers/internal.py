"""Internal queue operations: batch trigger, dead letters and stats."""
from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session, sessionmaker

from stocksync.config import Settings, get_settings
from stocksync.db import get_db, get_session_factory
from stocksync.schemas.jobs import DeadJobRead, ProcessJobResult, WebhookJobRead
from stocksync.services.job_store import MAX_CLAIM_BATCH, JobStore
from stocksync.services.verification import secrets_match
from stocksync.services.worker import WebhookWorker
from stocksync.utils.errors import DeadJobAlreadyReplayedError, DeadJobNotFoundError, error_response

logger = logging.getLogger(__name__)

DEFAULT_MAX_JOBS = 10
DEFAULT_WORKER_ID = "api"
_OPEN_ENVS = {"dev", "local", "test"}


def require_processor_secret(
    x_cron_secret: str | None = Header(default=None, alias="X-Cron-Secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Check ``X-Cron-Secret``; without a configured secret only dev envs are open."""

    expected = settings.webhook_processor_secret
    if not expected:
        if settings.app_env.lower() in _OPEN_ENVS:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response(
                "PROCESSOR_SECRET_NOT_CONFIGURED", "WEBHOOK_PROCESSOR_SECRET not configured."
            ),
        )
    if not secrets_match(expected, x_cron_secret):
        logger.warning("Rejected internal request with invalid cron secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Unauthorized."),
        )


router = APIRouter(
    prefix="/internal/webhooks",
    tags=["internal"],
    dependencies=[Depends(require_processor_secret)],
)


def parse_max_jobs(raw: str | None) -> int:
    """Parse ``maxJobs``; non-numeric values fall back to the default, others clamp to 0..100."""

    if raw is None or raw == "":
        return DEFAULT_MAX_JOBS
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_MAX_JOBS
    if not math.isfinite(value):
        return DEFAULT_MAX_JOBS
    return int(max(0, min(MAX_CLAIM_BATCH, value)))


@router.post("/process")
def process_webhook_jobs(
    max_jobs: str | None = Query(default=None, alias="maxJobs"),
    x_worker_id: str | None = Header(default=None, alias="X-Worker-Id"),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> dict[str, object]:
    worker = WebhookWorker(session_factory, x_worker_id or DEFAULT_WORKER_ID, settings)
    result: ProcessJobResult = worker.process_batch(parse_max_jobs(max_jobs))
    return {"success": True, "data": result.model_dump()}


@router.get("/dead-jobs", response_model=list[DeadJobRead])
def list_dead_jobs(
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return JobStore(db, settings).list_dead_jobs(limit)


@router.post("/dead-jobs/{dead_job_id}/replay", response_model=WebhookJobRead)
def replay_dead_job(
    dead_job_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        return JobStore(db, settings).replay_dead_job(dead_job_id)
    except DeadJobNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("DEAD_JOB_NOT_FOUND", str(exc)),
        )
    except DeadJobAlreadyReplayedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response("DEAD_JOB_NOT_REPLAYABLE", str(exc)),
        )


@router.get("/stats")
def queue_stats(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> dict[str, int]:
    return JobStore(db, settings).queue_counts()


__all__ = ["router", "parse_max_jobs", "require_processor_secret"]
