# tsstatus/core/errors.py
from __future__ import annotations


# substrings of transport failures that mean the query connection is gone
FATAL_MESSAGES = ("ECONNRESET", "not connected", "Connection timed out", "connection reset")

# "already connected elsewhere" / login rejected on the query interface
FATAL_ERROR_IDS = frozenset({"520"})


class StatusError(Exception):
    """Base class for every failure the status bridge handles itself."""


class SourceUnavailable(StatusError):
    """No live voice session, or a query against it failed. Skip the tick."""

    def __init__(self, message: str = "voice session unavailable", *, error_id: str | None = None):
        super().__init__(message)
        self.error_id = error_id


class TransportFatal(SourceUnavailable):
    """The query connection itself is broken; the supervisor must reconnect."""


class DisplayMissing(StatusError):
    """The Discord message or channel behind the display no longer exists."""


class RateLimited(StatusError):
    """A self-imposed guard tripped. No external call was made."""

    def __init__(self, retry_after: float):
        super().__init__(f"rate limited, retry in {retry_after:.1f}s")
        self.retry_after = retry_after


class PersistenceFailure(StatusError):
    """Writing the display record failed. Logged, retried on the next render."""


def is_fatal_transport_error(exc: BaseException) -> bool:
    if isinstance(exc, TransportFatal):
        return True

    error_id = getattr(exc, "error_id", None)
    if error_id is not None and str(error_id) in FATAL_ERROR_IDS:
        return True

    text = str(exc)
    return any(m in text for m in FATAL_MESSAGES)
