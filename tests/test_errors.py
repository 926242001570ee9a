import asyncio

import httpx
import pytest

from agent_hums.errors import (
    ErrorKind,
    InvalidInput,
    MissingCredentialsError,
    PermanentUpstreamError,
    TransientUpstreamError,
    UpstreamError,
    classify_error,
    is_transient_error,
    is_transient_status,
)


class _StatusError(Exception):
    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class TestTransientStatus:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504, 529])
    def test_transient(self, status):
        assert is_transient_status(status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_permanent(self, status):
        assert not is_transient_status(status)


class TestClassifyError:
    def test_typed_errors(self):
        assert classify_error(TransientUpstreamError("x", 529)) is ErrorKind.TRANSIENT
        assert classify_error(PermanentUpstreamError("x", 401)) is ErrorKind.PERMANENT
        assert classify_error(MissingCredentialsError("no key")) is ErrorKind.PERMANENT
        assert classify_error(InvalidInput("bad")) is ErrorKind.PERMANENT

    def test_status_beats_message(self):
        assert classify_error(UpstreamError("request timeout", 401)) is ErrorKind.PERMANENT
        assert classify_error(UpstreamError("whatever", 503)) is ErrorKind.TRANSIENT

    def test_status_attribute_on_foreign_error(self):
        assert classify_error(_StatusError(529)) is ErrorKind.TRANSIENT
        assert classify_error(_StatusError(400)) is ErrorKind.PERMANENT

    def test_httpx_status_error(self):
        request = httpx.Request("GET", "https://example.com")
        response = httpx.Response(429, request=request)
        exc = httpx.HTTPStatusError("rate limited", request=request, response=response)
        assert classify_error(exc) is ErrorKind.TRANSIENT

    def test_network_errors_are_transient(self):
        assert classify_error(httpx.ConnectTimeout("slow")) is ErrorKind.TRANSIENT
        assert classify_error(ConnectionResetError()) is ErrorKind.TRANSIENT
        assert classify_error(asyncio.TimeoutError()) is ErrorKind.TRANSIENT

    @pytest.mark.parametrize(
        "message",
        ["Overloaded", "Rate limit exceeded", "ECONNRESET", "operation timed out"],
    )
    def test_message_heuristics(self, message):
        assert classify_error(RuntimeError(message)) is ErrorKind.TRANSIENT

    def test_unknown_error_is_permanent(self):
        assert classify_error(ValueError("boom")) is ErrorKind.PERMANENT


class TestIsTransientError:
    def test_cancellation_never_retried(self):
        assert not is_transient_error(asyncio.CancelledError())

    def test_base_exception_never_retried(self):
        assert not is_transient_error(KeyboardInterrupt())

    def test_transient(self):
        assert is_transient_error(TransientUpstreamError("overloaded", 529))
