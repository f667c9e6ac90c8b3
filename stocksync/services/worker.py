"""Webhook job worker: claim, apply, snapshot, settle.

Each claimed job ends in exactly one of: succeeded, requeued with backoff,
or dead-lettered once its attempts reach ``max_attempts``.
"""
from __future__ import annotations

import logging
import os
import socket
import threading
from typing import Any, Callable

from sqlalchemy.orm import Session

from stocksync.config import Settings, get_settings
from stocksync.db import get_sessionmaker
from stocksync.models.webhook_job import WebhookJob
from stocksync.schemas.jobs import ProcessJobResult
from stocksync.services.identity import ProductResolver
from stocksync.services.inventory import InventoryEffectApplier
from stocksync.services.job_store import JobStore
from stocksync.services.normalize import normalize_webhook_work
from stocksync.services.snapshots import save_order_snapshot
from stocksync.utils.audit import WebhookLogStatus, log_webhook_event

logger = logging.getLogger(__name__)

LINE_ITEMS_FAILED_MESSAGE = "One or more line items could not be applied"

SUCCEEDED = "succeeded"
RETRIED = "retried"
DEAD = "dead"
LEASE_LOST = "lease_lost"


def default_worker_id(name: str | None = None) -> str:
    """Return ``host-pid-thread`` for lease ownership."""

    return f"{socket.gethostname()}-{os.getpid()}-{name or threading.current_thread().name}"


class WebhookWorker:
    """Processes batches of claimed webhook jobs with one session per batch."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        worker_id: str,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.worker_id = worker_id
        self.settings = settings or get_settings()

    def process_batch(self, max_jobs: int | None = None) -> ProcessJobResult:
        """Claim up to ``max_jobs`` jobs and drive each to its next state.

        Claim failures propagate; a failure while handling one job never
        stops the rest of the batch.
        """

        limit = self.settings.WORKER_BATCH_SIZE if max_jobs is None else max_jobs
        result = ProcessJobResult()
        db = self.session_factory()
        try:
            store = JobStore(db, self.settings)
            jobs = store.claim_jobs(limit, self.worker_id)
            applier = InventoryEffectApplier(db, ProductResolver(db))
            for job in jobs:
                result.processed += 1
                try:
                    outcome = self._process_job(db, store, applier, job)
                except Exception as exc:  # noqa: BLE001
                    db.rollback()
                    logger.exception(
                        "Unexpected error while processing webhook job",
                        extra={"job_id": job.id, "webhook_id": job.webhook_id},
                    )
                    try:
                        outcome = self._fail(db, store, job, {"message": str(exc) or exc.__class__.__name__})
                    except Exception:  # noqa: BLE001
                        db.rollback()
                        logger.exception("Failed to record job failure", extra={"job_id": job.id})
                        continue
                if outcome == SUCCEEDED:
                    result.succeeded += 1
                elif outcome == RETRIED:
                    result.retried += 1
                elif outcome == DEAD:
                    result.dead += 1
        finally:
            db.close()

        if result.processed:
            logger.info("Webhook batch processed", extra={"worker_id": self.worker_id, **result.model_dump()})
        return result

    def _process_job(
        self, db: Session, store: JobStore, applier: InventoryEffectApplier, job: WebhookJob
    ) -> str:
        work = normalize_webhook_work(job.topic, job.payload)
        outcome = applier.apply(job, work)
        if not outcome.ok:
            error = {
                "message": LINE_ITEMS_FAILED_MESSAGE,
                "failures": [failure.as_dict() for failure in outcome.failures],
            }
            return self._fail(db, store, job, error)

        save_order_snapshot(
            db,
            job=job,
            work=work,
            effects=outcome.applied,
            default_currency=self.settings.DEFAULT_CURRENCY,
            commit=False,
        )
        self._log(db, job, WebhookLogStatus.PROCESSED, commit=False)
        db.commit()
        return SUCCEEDED if store.mark_succeeded(job) else LEASE_LOST

    def _fail(self, db: Session, store: JobStore, job: WebhookJob, error: dict[str, Any]) -> str:
        self._log(db, job, WebhookLogStatus.FAILED, error=error)
        if job.attempts < job.max_attempts:
            return RETRIED if store.requeue(job, error) is not None else LEASE_LOST
        return DEAD if store.mark_dead(job, error) is not None else LEASE_LOST

    def _log(self, db: Session, job: WebhookJob, status: str, *, error: dict | None = None, commit: bool = True) -> None:
        log_webhook_event(
            db,
            webhook_id=job.webhook_id,
            topic=job.topic,
            shop=job.shop,
            order_id=job.order_id,
            payload=job.payload,
            status=status,
            error=error,
            commit=commit,
        )


class WorkerPool:
    """Runs ``count`` polling worker threads until ``stop`` is called."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Settings | None = None,
        count: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.count = max(1, count if count is not None else self.settings.WORKER_COUNT)
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def _loop(self, name: str) -> None:
        worker = WebhookWorker(self.session_factory, default_worker_id(name), self.settings)
        poll_seconds = self.settings.WORKER_POLL_SECONDS
        logger.info("Worker started", extra={"worker_id": worker.worker_id})
        while not self._stop.is_set():
            try:
                result = worker.process_batch()
            except Exception:  # noqa: BLE001
                logger.exception("Worker batch failed", extra={"worker_id": worker.worker_id})
                self._stop.wait(poll_seconds)
                continue
            if result.processed == 0:
                self._stop.wait(poll_seconds)
        logger.info("Worker stopped", extra={"worker_id": worker.worker_id})

    def start(self) -> None:
        for index in range(self.count):
            thread = threading.Thread(target=self._loop, args=(f"worker-{index + 1}",), name=f"worker-{index + 1}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def run_forever(self) -> None:
        """Start the threads and block until they have all exited."""

        self.start()
        try:
            while any(thread.is_alive() for thread in self._threads):
                self._stop.wait(0.5)
        finally:
            self.stop()
            self.join()
            logger.info("All workers stopped")


def process_webhook_jobs_once() -> ProcessJobResult:
    """Run one batch with the application session factory (scheduler entry point)."""

    worker = WebhookWorker(get_sessionmaker(), default_worker_id("scheduler"))
    return worker.process_batch()


__all__ = [
    "LINE_ITEMS_FAILED_MESSAGE",
    "WebhookWorker",
    "WorkerPool",
    "default_worker_id",
    "process_webhook_jobs_once",
]
