"""Run the stocksync webhook worker pool until SIGINT/SIGTERM."""
from __future__ import annotations

import argparse
import logging
import signal

from dotenv import load_dotenv

load_dotenv()

from stocksync import db
from stocksync.config import get_settings
from stocksync.core.logging import setup_logging
from stocksync.services.worker import WorkerPool

logger = logging.getLogger("stocksync.worker")


def _install_signal_handlers(pool: WorkerPool) -> None:
    def _handler(signum, frame):
        logger.info("Received signal %s; stopping workers", signum)
        pool.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--workers", type=int, default=settings.WORKER_COUNT, help="number of worker threads")
    args = parser.parse_args(argv)

    setup_logging(settings.LOG_LEVEL, service="stocksync-worker")
    db.init_engine()
    pool = WorkerPool(db.get_sessionmaker(), settings, count=args.workers)
    _install_signal_handlers(pool)
    logger.info("Starting webhook workers", extra={"workers": pool.count, "database": db.get_engine().url.render_as_string(hide_password=True)})
    try:
        pool.run_forever()
    finally:
        db.close_engine()


if __name__ == "__main__":
    main()
