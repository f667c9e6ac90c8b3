"""Fixed-window rate limiting for webhook intake, keyed by client IP."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stocksync.models.webhook_event import WebhookRateLimit
from stocksync.utils.time import utcnow

logger = logging.getLogger(__name__)


def window_start_for(now: datetime, window_seconds: int) -> datetime:
    """Truncate ``now`` to the start of its fixed window."""

    window = max(int(window_seconds), 1)
    epoch = int(now.timestamp())
    return datetime.fromtimestamp(epoch - epoch % window, tz=timezone.utc)


def _increment(db: Session, ip: str, window_start: datetime) -> int:
    stmt = (
        select(WebhookRateLimit)
        .where(WebhookRateLimit.ip == ip, WebhookRateLimit.window_start == window_start)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    counter = db.scalars(stmt).one_or_none()
    if counter is None:
        try:
            with db.begin_nested():
                counter = WebhookRateLimit(ip=ip, window_start=window_start, count=1)
                db.add(counter)
            return 1
        except IntegrityError:
            counter = db.scalars(stmt).one()
    counter.count += 1
    return counter.count


def rate_limit_check(db: Session, ip: str | None, limit: int, window_seconds: int) -> bool:
    """Count one request for ``ip``; ``True`` while the window is under ``limit``.

    Storage errors allow the request.
    """

    if not ip:
        return True
    try:
        count = _increment(db, ip[:64], window_start_for(utcnow(), window_seconds))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Rate limit check failed; allowing request", exc_info=True, extra={"ip": ip})
        return True
    if count > limit:
        logger.warning("Webhook rate limit exceeded", extra={"ip": ip, "count": count, "limit": limit})
        return False
    return True


__all__ = ["rate_limit_check", "window_start_for"]
