"""Domain exceptions and helpers for standardized error responses."""
from typing import Any


class StocksyncError(Exception):
    """Base class for errors raised by the reconciliation pipeline."""


class UnsupportedTopicError(StocksyncError, ValueError):
    """Raised when a webhook topic is outside the supported set."""

    def __init__(self, topic: Any) -> None:
        super().__init__(f"Unsupported webhook topic: {topic!r}")
        self.topic = topic


class DeadJobNotFoundError(StocksyncError, LookupError):
    """Raised when a dead-letter archive entry does not exist."""


class DeadJobAlreadyReplayedError(StocksyncError):
    """Raised when an archived job has already been re-enqueued."""


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload
