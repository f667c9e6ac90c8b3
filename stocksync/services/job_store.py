"""Durable webhook job queue operations.

``JobStore`` is the only writer of ``webhook_jobs`` and ``dead_jobs``. Every
transition after a claim is guarded by the lease (``locked_by`` plus the
attempt number stamped by the claim), so a worker whose lease was reclaimed
cannot finish a job another worker now owns.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stocksync.config import Settings, get_settings
from stocksync.models.webhook_event import ProcessedWebhook
from stocksync.models.webhook_job import DeadJob, WebhookJob, WebhookJobStatus
from stocksync.schemas.shopify import WebhookTopic
from stocksync.services.backoff import compute_backoff_seconds
from stocksync.utils.errors import DeadJobAlreadyReplayedError, DeadJobNotFoundError
from stocksync.utils.time import utcnow

logger = logging.getLogger(__name__)

MAX_CLAIM_BATCH = 100


class JobStore:
    """Enqueue, claim and transition webhook jobs."""

    def __init__(self, db: Session, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    # ---------- Intake ----------
    def enqueue(
        self,
        *,
        webhook_id: str,
        topic: WebhookTopic | str,
        shop: str,
        order_id: str | None,
        payload: Any,
        run_at: datetime | None = None,
        commit: bool = True,
    ) -> bool:
        """Insert a queued job; returns ``False`` for an already known delivery.

        With ``commit=False`` the insert joins the caller's transaction.
        """

        job = WebhookJob(
            webhook_id=webhook_id,
            topic=WebhookTopic.parse(topic).value,
            shop=shop,
            order_id=order_id,
            payload=payload,
            status=WebhookJobStatus.QUEUED,
            attempts=0,
            max_attempts=self.settings.JOB_MAX_ATTEMPTS,
            run_at=run_at or utcnow(),
        )
        try:
            with self.db.begin_nested():
                self.db.add(job)
        except IntegrityError:
            if commit:
                self.db.commit()
            logger.info("Duplicate webhook delivery ignored", extra={"webhook_id": webhook_id})
            return False
        if commit:
            self.db.commit()
        logger.info(
            "Webhook job enqueued",
            extra={"webhook_id": webhook_id, "job_id": job.id, "topic": job.topic, "shop": shop},
        )
        return True

    def record_processed_webhook(self, *, webhook_id: str, topic: str, shop: str, commit: bool = True) -> bool:
        """Insert the de-duplication marker; ``False`` means already seen."""

        try:
            with self.db.begin_nested():
                self.db.add(ProcessedWebhook(webhook_id=webhook_id, topic=topic, shop=shop, received_at=utcnow()))
        except IntegrityError:
            if commit:
                self.db.commit()
            return False
        if commit:
            self.db.commit()
        return True

    # ---------- Claim ----------
    def claim_jobs(self, max_jobs: int, worker_id: str) -> list[WebhookJob]:
        """Lease up to ``max_jobs`` due jobs for ``worker_id``.

        Due means queued with ``run_at`` in the past, or processing under a
        lease older than ``JOB_LEASE_TTL_SECONDS``. The returned objects are
        detached snapshots of the claimed rows.
        """

        limit = max(0, min(MAX_CLAIM_BATCH, int(max_jobs)))
        if limit == 0:
            return []

        now = utcnow()
        lease_cutoff = now - timedelta(seconds=self.settings.JOB_LEASE_TTL_SECONDS)
        claimable = or_(
            and_(WebhookJob.status == WebhookJobStatus.QUEUED, WebhookJob.run_at <= now),
            and_(WebhookJob.status == WebhookJobStatus.PROCESSING, WebhookJob.locked_at <= lease_cutoff),
        )

        claimed_ids: list[int] = []
        try:
            candidates = self.db.execute(
                select(WebhookJob.id, WebhookJob.status, WebhookJob.locked_by)
                .where(claimable)
                .order_by(WebhookJob.run_at.asc(), WebhookJob.created_at.asc(), WebhookJob.id.asc())
                .limit(limit)
                .with_for_update(skip_locked=True)
            ).all()
            for job_id, status, previous_owner in candidates:
                result = self.db.execute(
                    update(WebhookJob)
                    .where(WebhookJob.id == job_id, claimable)
                    .values(
                        status=WebhookJobStatus.PROCESSING,
                        attempts=WebhookJob.attempts + 1,
                        last_attempt_at=now,
                        locked_at=now,
                        locked_by=worker_id,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    continue
                claimed_ids.append(job_id)
                if status == WebhookJobStatus.PROCESSING:
                    logger.warning(
                        "Reclaimed job with expired lease",
                        extra={"job_id": job_id, "previous_owner": previous_owner, "worker_id": worker_id},
                    )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if not claimed_ids:
            return []

        jobs = list(
            self.db.scalars(
                select(WebhookJob)
                .where(WebhookJob.id.in_(claimed_ids))
                .order_by(WebhookJob.run_at.asc(), WebhookJob.created_at.asc(), WebhookJob.id.asc())
                .execution_options(populate_existing=True)
            )
        )
        for job in jobs:
            self.db.expunge(job)
        logger.info("Claimed webhook jobs", extra={"worker_id": worker_id, "count": len(jobs)})
        return jobs

    # ---------- Transitions ----------
    def _leased(self, job: WebhookJob):
        return and_(
            WebhookJob.id == job.id,
            WebhookJob.status == WebhookJobStatus.PROCESSING,
            WebhookJob.locked_by == job.locked_by,
            WebhookJob.attempts == job.attempts,
        )

    def _transition(self, job: WebhookJob, **values: Any) -> bool:
        now = utcnow()
        result = self.db.execute(
            update(WebhookJob)
            .where(self._leased(job))
            .values(locked_at=None, locked_by=None, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Lease lost before transition",
                extra={"job_id": job.id, "worker_id": job.locked_by, "target": str(values.get("status"))},
            )
            return False
        return True

    def mark_succeeded(self, job: WebhookJob) -> bool:
        try:
            done = self._transition(job, status=WebhookJobStatus.SUCCEEDED, last_error=None)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        if done:
            job.status = WebhookJobStatus.SUCCEEDED
            job.locked_at = job.locked_by = None
            job.last_error = None
        return done

    def requeue(self, job: WebhookJob, error: dict[str, Any]) -> datetime | None:
        """Return the job to the queue after ``backoff(attempts)``; returns the new ``run_at``."""

        run_at = utcnow() + timedelta(seconds=compute_backoff_seconds(job.attempts))
        try:
            done = self._transition(job, status=WebhookJobStatus.QUEUED, run_at=run_at, last_error=error)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        if not done:
            return None
        job.status = WebhookJobStatus.QUEUED
        job.run_at = run_at
        job.locked_at = job.locked_by = None
        job.last_error = error
        logger.info(
            "Webhook job scheduled for retry",
            extra={"job_id": job.id, "attempts": job.attempts, "run_at": run_at.isoformat()},
        )
        return run_at

    def mark_dead(self, job: WebhookJob, error: dict[str, Any]) -> DeadJob | None:
        """Move the job to ``dead`` and archive it, in one transaction."""

        dead_job: DeadJob | None = None
        try:
            if self._transition(job, status=WebhookJobStatus.DEAD, last_error=error):
                dead_job = DeadJob(
                    webhook_job_id=job.id,
                    webhook_id=job.webhook_id,
                    topic=job.topic,
                    shop=job.shop,
                    order_id=job.order_id,
                    payload=job.payload,
                    error=error,
                    attempts=job.attempts,
                    last_attempt_at=job.last_attempt_at,
                )
                self.db.add(dead_job)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        if dead_job is not None:
            job.status = WebhookJobStatus.DEAD
            job.locked_at = job.locked_by = None
            job.last_error = error
            logger.error(
                "Webhook job dead-lettered",
                extra={"job_id": job.id, "webhook_id": job.webhook_id, "attempts": job.attempts},
            )
        return dead_job

    # ---------- Dead letters ----------
    def list_dead_jobs(self, limit: int = 100) -> list[DeadJob]:
        return list(
            self.db.scalars(
                select(DeadJob).order_by(DeadJob.created_at.desc(), DeadJob.id.desc()).limit(max(1, limit))
            )
        )

    def replay_dead_job(self, dead_job_id: int) -> WebhookJob:
        """Re-enqueue an archived job with a fresh retry budget.

        The archive row is left untouched; replay is refused while the job
        is no longer dead.
        """

        dead_job = self.db.get(DeadJob, dead_job_id)
        if dead_job is None:
            raise DeadJobNotFoundError(f"Dead job {dead_job_id} not found.")

        now = utcnow()
        job = None
        if dead_job.webhook_job_id is not None:
            job = self.db.get(
                WebhookJob, dead_job.webhook_job_id, with_for_update=True, populate_existing=True
            )

        if job is None:
            job = WebhookJob(
                webhook_id=dead_job.webhook_id or f"replay-{dead_job.id}",
                topic=dead_job.topic,
                shop=dead_job.shop,
                order_id=dead_job.order_id,
                payload=dead_job.payload,
                max_attempts=self.settings.JOB_MAX_ATTEMPTS,
            )
            self.db.add(job)
        elif job.status != WebhookJobStatus.DEAD:
            self.db.rollback()
            raise DeadJobAlreadyReplayedError(f"Job {job.id} is {job.status.value}, not dead.")

        job.status = WebhookJobStatus.QUEUED
        job.attempts = 0
        job.run_at = now
        job.locked_at = None
        job.locked_by = None
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info("Dead job replayed", extra={"dead_job_id": dead_job_id, "job_id": job.id})
        return job

    # ---------- Queries ----------
    def queue_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in WebhookJobStatus}
        rows = self.db.execute(select(WebhookJob.status, func.count()).group_by(WebhookJob.status))
        for status, count in rows:
            counts[WebhookJobStatus(status).value] = count
        counts["dead_letters"] = self.db.scalar(select(func.count()).select_from(DeadJob)) or 0
        return counts


__all__ = ["JobStore", "MAX_CLAIM_BATCH"]
