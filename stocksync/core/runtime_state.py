"""Process-wide runtime flags shared across modules."""
from __future__ import annotations

_worker_scheduler_active = False


def set_worker_scheduler_active(active: bool) -> None:
    global _worker_scheduler_active
    _worker_scheduler_active = active


def is_worker_scheduler_active() -> bool:
    return _worker_scheduler_active
