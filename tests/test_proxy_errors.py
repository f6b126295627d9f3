"""
Tests for pow_proxy/proxy/errors.py

## Test Perspectives Table
| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|----------------------|--------------------------------------|-----------------|-------|
| TC-N-01 | Exception with message | Equivalence – normal | str(e) used as-is | - |
| TC-N-02 | Exception with empty message | Boundary – empty | TypeName: (no message) | - |
| TC-N-03 | TimeoutError() no args | Boundary – no args | TimeoutError: (no message) | - |
| TC-K-01 | ClientProtocolError | Equivalence – kind | 400, fixed message | - |
| TC-K-02 | UpstreamConnectError | Equivalence – kind | 502, forwarding message | - |
| TC-K-03 | UpstreamStreamError | Equivalence – kind | 502, reading message | - |
| TC-K-04 | to_text | Equivalence – body | Message + newline | - |
| TC-S-01 | ProxyStartError | Equivalence – start | Port and cause kept | - |
"""

import httpx
import pytest

from pow_proxy.proxy.errors import (
    ClientProtocolError,
    ProxyError,
    ProxyErrorCode,
    ProxyStartError,
    UpstreamConnectError,
    UpstreamStreamError,
    format_exception,
)

pytestmark = pytest.mark.unit


class TestFormatException:
    """Tests for format_exception."""

    def test_message_used_as_is(self) -> None:
        """TC-N-01: Exceptions with a message render as that message."""
        assert format_exception(ValueError("bad value")) == "bad value"

    def test_empty_message_uses_type_name(self) -> None:
        """TC-N-02: Empty messages fall back to the exception type name."""
        assert format_exception(httpx.RequestError("")) == "RequestError: (no message)"

    def test_no_args_uses_type_name(self) -> None:
        """TC-N-03: Exceptions without args fall back to the type name."""
        assert format_exception(TimeoutError()) == "TimeoutError: (no message)"


class TestErrorKinds:
    """Tests for the three request handling error kinds."""

    def test_client_protocol_error(self) -> None:
        """TC-K-01: Missing Content-Type maps to 400."""
        error = ClientProtocolError()

        assert isinstance(error, ProxyError)
        assert error.code == ProxyErrorCode.CLIENT_PROTOCOL_ERROR
        assert error.status == 400
        assert error.message == "Request Content-Type header not specified"
        assert error.cause is None

    def test_upstream_connect_error(self) -> None:
        """TC-K-02: Connect failures map to 502 and keep their cause."""
        cause = httpx.ConnectError("Connection refused")
        error = UpstreamConnectError(cause)

        assert error.code == ProxyErrorCode.UPSTREAM_CONNECT_ERROR
        assert error.status == 502
        assert error.cause is cause
        assert str(error) == "Error forwarding request to remote server: Connection refused"

    def test_upstream_stream_error(self) -> None:
        """TC-K-03: Mid-stream failures map to 502 and keep their cause."""
        cause = httpx.ReadError("")
        error = UpstreamStreamError(cause)

        assert error.code == ProxyErrorCode.UPSTREAM_STREAM_ERROR
        assert error.status == 502
        assert error.message == (
            "Error reading response from remote server: ReadError: (no message)"
        )

    def test_to_text_adds_newline(self) -> None:
        """TC-K-04: Response body text is a single newline-terminated line."""
        assert ClientProtocolError().to_text() == "Request Content-Type header not specified\n"

    def test_codes_are_strings(self) -> None:
        """Error codes serialize as their names."""
        assert ProxyErrorCode.UPSTREAM_CONNECT_ERROR.value == "UPSTREAM_CONNECT_ERROR"
        assert ProxyErrorCode("CLIENT_PROTOCOL_ERROR") is ProxyErrorCode.CLIENT_PROTOCOL_ERROR


class TestProxyStartError:
    """Tests for ProxyStartError."""

    def test_start_error_keeps_port_and_cause(self) -> None:
        """TC-S-01: Bind failures carry the port and the underlying error."""
        cause = OSError(98, "Address already in use")
        error = ProxyStartError("8545", cause)

        assert error.port == "8545"
        assert error.cause is cause
        assert str(error).startswith("Could not listen on port 8545: ")
        assert "Address already in use" in str(error)
