"""
Error taxonomy for the forwarding proxy.

Every failure in the request handler is classified into one of three kinds:
- CLIENT_PROTOCOL_ERROR: the caller's request is unusable (no Content-Type).
- UPSTREAM_CONNECT_ERROR: the forward to the provider could not be made.
- UPSTREAM_STREAM_ERROR: the provider's response broke off while relaying it.

Errors never stop the server; they are logged and written into the response body.
"""

from enum import Enum


class ProxyErrorCode(str, Enum):
    """Proxy error kinds."""

    CLIENT_PROTOCOL_ERROR = "CLIENT_PROTOCOL_ERROR"
    """Request is missing a usable Content-Type header. Not retried."""

    UPSTREAM_CONNECT_ERROR = "UPSTREAM_CONNECT_ERROR"
    """Provider unreachable (DNS, TCP, TLS, timeout). Not retried."""

    UPSTREAM_STREAM_ERROR = "UPSTREAM_STREAM_ERROR"
    """Provider connection dropped while copying its response. Not retried."""


def format_exception(e: BaseException) -> str:
    """Render an exception for logs and response bodies.

    Some timeout and transport errors carry no args, so ``str(e)`` is empty.
    Those are rendered as ``"{TypeName}: (no message)"`` instead.
    """
    message = str(e)
    if not message:
        return f"{type(e).__name__}: (no message)"
    return message


class ProxyError(Exception):
    """
    Base exception for request handling failures.

    Carries the error kind and the HTTP status the caller should see when
    status codes are enabled.
    """

    code: ProxyErrorCode
    status: int = 500

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_text(self) -> str:
        """Plaintext line written into the response body."""
        return f"{self.message}\n"


class ClientProtocolError(ProxyError):
    """Raised when the inbound request has no Content-Type header."""

    code = ProxyErrorCode.CLIENT_PROTOCOL_ERROR
    status = 400

    def __init__(self) -> None:
        super().__init__("Request Content-Type header not specified")


class UpstreamConnectError(ProxyError):
    """Raised when the POST to the provider cannot be issued or fails to connect."""

    code = ProxyErrorCode.UPSTREAM_CONNECT_ERROR
    status = 502

    def __init__(self, cause: BaseException):
        super().__init__(
            f"Error forwarding request to remote server: {format_exception(cause)}",
            cause=cause,
        )


class UpstreamStreamError(ProxyError):
    """Raised when relaying the provider's response body fails partway."""

    code = ProxyErrorCode.UPSTREAM_STREAM_ERROR
    status = 502

    def __init__(self, cause: BaseException):
        super().__init__(
            f"Error reading response from remote server: {format_exception(cause)}",
            cause=cause,
        )


class ProxyStartError(Exception):
    """Raised when the proxy cannot bind its listening port."""

    def __init__(self, port: str, cause: BaseException):
        self.port = port
        self.cause = cause
        super().__init__(f"Could not listen on port {port}: {format_exception(cause)}")
