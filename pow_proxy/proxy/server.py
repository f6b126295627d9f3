"""
PoW Proxy Server.

Local JSON-RPC relay for Ethereum client software. Every inbound request,
whatever its method or path, is POSTed to a remote provider and the provider's
response is streamed back to the caller.

Contract:
- The request body is never parsed; it is streamed to the provider as-is.
- A missing Content-Type header is rejected before any upstream call is made.
- Successful replies are always labelled application/json.
- Failures are written into the response body as one plaintext line, with
  400/502 status codes unless legacy (always 200) replies are configured.
- A failure while relaying the provider's body can only be appended after the
  bytes already sent, since the headers have gone out by then.
"""

import asyncio
import functools
import signal
from collections.abc import AsyncIterator
from typing import Any

import httpx
from aiohttp import hdrs, web

from pow_proxy.proxy.errors import (
    ClientProtocolError,
    ProxyError,
    ProxyStartError,
    UpstreamConnectError,
    UpstreamStreamError,
)
from pow_proxy.utils.config import Settings, build_provider_url, resolve_provider_url
from pow_proxy.utils.logging import get_logger

DEFAULT_REQUEST_TIMEOUT = 300.0
DEFAULT_CHUNK_SIZE = 65536
RESPONSE_CONTENT_TYPE = "application/json"


class ProxyServer:
    """Forwards JSON-RPC requests to a remote provider."""

    def __init__(
        self,
        port: str | int,
        provider_url: str,
        network: str = "",
        project_id: str = "",
        *,
        host: str = "",
        request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT,
        error_status_codes: bool = True,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        logger: Any = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            port: Port to listen on. Validated only when the server starts.
            provider_url: Explicit provider URL. When blank, the hosted
                endpoint for ``network`` and ``project_id`` is used.
            network: Network name for the hosted endpoint.
            project_id: Project id for the hosted endpoint.
            host: Bind address; blank binds all interfaces.
            request_timeout: Deadline in seconds for each whole forward,
                from connecting to the last relayed byte.
                None or 0 disables it.
            error_status_codes: Attach 400/502 to error replies. False keeps
                the legacy behaviour of answering 200 with the error text.
            chunk_size: Read size when streaming the request body upstream.
            logger: structlog-style logger; defaults to this module's logger.
            transport: httpx transport for outbound calls (tests inject one).
        """
        self._port = str(port)
        self._provider_url = build_provider_url(provider_url, network, project_id)
        self._host = host
        self._request_timeout = request_timeout or None
        self._error_status_codes = error_status_codes
        self._chunk_size = chunk_size
        self._logger = logger if logger is not None else get_logger(__name__)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "ProxyServer":
        """Create a proxy from loaded settings."""
        proxy = settings.proxy
        return cls(
            proxy.port,
            resolve_provider_url(settings),
            host=proxy.host,
            request_timeout=proxy.request_timeout,
            error_status_codes=proxy.error_status_codes,
            chunk_size=proxy.chunk_size,
            **kwargs,
        )

    @property
    def port(self) -> str:
        return self._port

    @property
    def provider_url(self) -> str:
        return self._provider_url

    @property
    def host(self) -> str:
        return self._host

    # =========================================================================
    # Outbound client
    # =========================================================================

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the outbound HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._request_timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the outbound HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # =========================================================================
    # Request handling
    # =========================================================================

    async def _iter_request_body(self, request: web.Request) -> AsyncIterator[bytes]:
        """Yield the inbound body chunk by chunk, without buffering it."""
        async for chunk in request.content.iter_chunked(self._chunk_size):
            yield chunk

    def _error_response(self, error: ProxyError, remote: str | None) -> web.Response:
        self._logger.error(
            error.message,
            error_code=error.code.value,
            remote=remote,
        )
        status = error.status if self._error_status_codes else 200
        return web.Response(status=status, text=error.to_text())

    def _deadline(self) -> float | None:
        """Loop time by which the whole forward must finish, or None."""
        if self._request_timeout is None:
            return None
        return asyncio.get_running_loop().time() + self._request_timeout

    def _deadline_exceeded(self) -> TimeoutError:
        return TimeoutError(f"request deadline of {self._request_timeout:g}s exceeded")

    async def handle(self, request: web.Request) -> web.StreamResponse:
        """Forward one request to the provider and relay its response.

        ``request_timeout`` bounds the whole exchange, from connecting to the
        last relayed byte, so a provider that trickles bytes cannot hold the
        handler open.
        """
        remote = request.remote
        self._logger.info(
            "Request received",
            method=request.method,
            remote=remote,
        )

        content_type = request.headers.get(hdrs.CONTENT_TYPE, "")
        if not content_type:
            return self._error_response(ClientProtocolError(), remote)

        # aiohttp decodes raw header bytes as utf-8 with surrogateescape;
        # reversing that forwards the caller's exact bytes.
        raw_content_type = content_type.encode("utf-8", "surrogateescape")

        client = self._get_client()
        deadline = self._deadline()
        try:
            async with asyncio.timeout_at(deadline):
                upstream_request = client.build_request(
                    "POST",
                    self._provider_url,
                    headers={hdrs.CONTENT_TYPE: raw_content_type},
                    content=self._iter_request_body(request),
                )
                upstream = await client.send(upstream_request, stream=True)
        except TimeoutError:
            return self._error_response(
                UpstreamConnectError(self._deadline_exceeded()), remote
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._error_response(UpstreamConnectError(e), remote)

        try:
            response = web.StreamResponse(status=200)
            response.headers[hdrs.CONTENT_TYPE] = RESPONSE_CONTENT_TYPE
            await response.prepare(request)

            error: UpstreamStreamError | None = None
            try:
                async with asyncio.timeout_at(deadline):
                    async for chunk in upstream.aiter_bytes():
                        await response.write(chunk)
            except TimeoutError:
                error = UpstreamStreamError(self._deadline_exceeded())
            except (httpx.HTTPError, httpx.StreamError) as e:
                error = UpstreamStreamError(e)

            if error is not None:
                self._logger.error(
                    error.message,
                    error_code=error.code.value,
                    remote=remote,
                )
                await response.write(error.to_text().encode("utf-8"))
                await response.write_eof()
                return response

            await response.write_eof()
        finally:
            await upstream.aclose()

        self._logger.info(
            "Response sent",
            remote=remote,
            upstream_status=upstream.status_code,
        )
        return response

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_app(self) -> web.Application:
        """Create the aiohttp application. Every method and path is forwarded."""
        app = web.Application()
        app.router.add_route("*", "/{path:.*}", self.handle)

        async def _on_cleanup(_app: web.Application) -> None:
            await self.close()

        app.on_cleanup.append(_on_cleanup)
        return app

    async def serve(self, stop_event: asyncio.Event | None = None) -> None:
        """Listen on the configured port until stopped.

        SIGINT/SIGTERM set the stop event when running on the main thread.

        Raises:
            ProxyStartError: If the port is invalid or cannot be bound.
        """
        try:
            port = int(self._port)
        except ValueError as e:
            raise ProxyStartError(self._port, e) from e

        app = self.create_app()
        runner = web.AppRunner(app, access_log=None)
        await runner.setup()

        site = web.TCPSite(runner, self._host or None, port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise ProxyStartError(self._port, e) from e

        self._logger.info(
            f"Proxy server listening on port {self._port}",
            host=self._host or "*",
            port=self._port,
            provider_url=self._provider_url,
        )

        if stop_event is None:
            stop_event = asyncio.Event()

            def handle_signal(sig: int) -> None:
                self._logger.info("Received shutdown signal", signal=sig)
                stop_event.set()

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, functools.partial(handle_signal, sig))

        try:
            await stop_event.wait()
        finally:
            self._logger.info("Shutting down proxy server")
            await runner.cleanup()

    def start(self) -> None:
        """Run the proxy for the lifetime of the process.

        Raises:
            ProxyStartError: If the port is invalid or cannot be bound.
        """
        asyncio.run(self.serve())
