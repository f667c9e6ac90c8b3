"""Retry delay policy for failed webhook jobs."""

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 30 * 60


def compute_backoff_seconds(attempts: int) -> int:
    """Return the delay before the next attempt: 5s, 10s, 20s ... capped at 30 minutes."""

    n = max(1, attempts)
    exponent = min(n - 1, 32)
    return min(MAX_DELAY_SECONDS, BASE_DELAY_SECONDS * 2**exponent)


__all__ = ["compute_backoff_seconds", "BASE_DELAY_SECONDS", "MAX_DELAY_SECONDS"]
