"""Exception hierarchy and upstream error classification.

Errors raised while talking to a hosted model are partitioned into
*transient* (worth retrying) and *permanent* (fail fast). ``classify_error``
is the single place that makes that decision, so the retry controller and
the HTTP layer always agree.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
)


class ErrorKind(StrEnum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class HumsError(Exception):
    """Base class for all errors raised by this package."""


class InvalidInput(HumsError):
    """Rejected request: empty message, unknown task type, malformed payload."""


class UpstreamError(HumsError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientUpstreamError(UpstreamError):
    """Rate limited, overloaded, 5xx or timed out. Retried per policy."""


class PermanentUpstreamError(UpstreamError):
    """Auth failure, malformed request, any 4xx other than 429. Never retried."""


class MissingCredentialsError(PermanentUpstreamError):
    pass


class DocumentParseError(HumsError):
    """Raised when a document cannot be decoded or its text extracted."""


class ToolExecutionError(HumsError):
    pass


_TRANSIENT_STATUS = {408, 425, 429, 529}

_TRANSIENT_MARKERS = (
    "overloaded",
    "rate limit",
    "timeout",
    "timed out",
    "econnreset",
    "temporarily unavailable",
    "connection reset",
)


def _status_of(exc: BaseException) -> int | None:
    if isinstance(exc, UpstreamError):
        return exc.status_code
    if isinstance(exc, APIStatusError):
        return exc.status_code
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def is_transient_status(status: int) -> bool:
    return status in _TRANSIENT_STATUS or 500 <= status < 600


def classify_error(exc: BaseException) -> ErrorKind:
    """Decide whether ``exc`` is worth retrying.

    Explicit status codes win over message heuristics: a 401 whose body says
    "timeout" is still an auth failure.
    """
    if isinstance(exc, TransientUpstreamError):
        return ErrorKind.TRANSIENT
    if isinstance(exc, (PermanentUpstreamError, InvalidInput)):
        return ErrorKind.PERMANENT

    status = _status_of(exc)
    if status is not None:
        return ErrorKind.TRANSIENT if is_transient_status(status) else ErrorKind.PERMANENT

    if isinstance(
        exc,
        (
            APITimeoutError,
            APIConnectionError,
            httpx.TimeoutException,
            httpx.NetworkError,
            asyncio.TimeoutError,
            ConnectionError,
        ),
    ):
        return ErrorKind.TRANSIENT

    message = str(exc).lower()
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


def is_transient_error(exc: BaseException) -> bool:
    # Cancellation is never retried; it must unwind the request immediately.
    if isinstance(exc, asyncio.CancelledError):
        return False
    if not isinstance(exc, Exception):
        return False
    return classify_error(exc) is ErrorKind.TRANSIENT
