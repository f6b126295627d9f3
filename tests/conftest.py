"""
Pytest fixtures and configuration for pow-proxy tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no sockets
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Proxy and stub provider running in-process on
  loopback sockets (aiohttp.test_utils). No external network access.

Run everything:
    pytest

=============================================================================
Mock Strategy
=============================================================================

- Remote provider: aiohttp stub app served by aiohttp.test_utils.TestServer,
  or httpx.MockTransport when a failure must be injected mid-request
- Logger: injected MagicMock, so log calls can be asserted without capturing output
- Config files: tmp_path + POW_PROXY_CONFIG_DIR
"""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

# Set test environment before importing anything else
os.environ["POW_PROXY_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["POW_PROXY_GENERAL__LOGS_DIR"] = ""

from pow_proxy.proxy.server import ProxyServer  # noqa: E402
from pow_proxy.utils.config import reset_settings_cache  # noqa: E402

ETH_BLOCK_NUMBER_RESPONSE = b'{"jsonrpc":"2.0","id":1,"result":"0x10"}'


# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: In-process proxy and stub provider on loopback sockets"
    )


def pytest_collection_modifyitems(config, items):
    """Tests without an explicit classification marker are unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings around every test."""
    reset_settings_cache()
    yield
    reset_settings_cache()


# =============================================================================
# Stub Provider
# =============================================================================


class StubProvider:
    """In-process JSON-RPC provider that records what it receives."""

    def __init__(
        self,
        body: bytes = ETH_BLOCK_NUMBER_RESPONSE,
        status: int = 200,
        content_type: str = "application/json",
        echo: bool = False,
    ):
        self.body = body
        self.status = status
        self.content_type = content_type
        self.echo = echo
        self.calls: list[dict] = []
        self.url = ""

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.calls.append(
            {
                "method": request.method,
                "path": request.path,
                "content_type": request.headers.get("Content-Type"),
                "body": body,
            }
        )
        return web.Response(
            status=self.status,
            body=body if self.echo else self.body,
            headers={"Content-Type": self.content_type},
        )

    def create_app(self) -> web.Application:
        app = web.Application(client_max_size=16 * 1024 * 1024)
        app.router.add_route("*", "/{path:.*}", self.handle)
        return app


@asynccontextmanager
async def _serve_provider(path: str = "/", **kwargs) -> AsyncIterator[StubProvider]:
    stub = StubProvider(**kwargs)
    async with TestServer(stub.create_app()) as server:
        stub.url = str(server.make_url(path))
        yield stub


@asynccontextmanager
async def _serve_proxy(proxy: ProxyServer) -> AsyncIterator[TestClient]:
    async with TestClient(TestServer(proxy.create_app())) as client:
        yield client


@pytest_asyncio.fixture
async def provider() -> AsyncIterator[StubProvider]:
    """Stub provider answering eth_blockNumber."""
    async with _serve_provider("/v3/test-project") as stub:
        yield stub


@pytest_asyncio.fixture
async def echo_provider() -> AsyncIterator[StubProvider]:
    """Stub provider that replies with the request body."""
    async with _serve_provider(echo=True) as stub:
        yield stub


@pytest.fixture
def serve_provider():
    """Serve a StubProvider built from keyword arguments.

    Usage:
        async with serve_provider(content_type="text/plain") as stub:
            ...
    """
    return _serve_provider


@pytest.fixture
def running_proxy():
    """Serve a ProxyServer on a loopback port.

    Usage:
        async with running_proxy(ProxyServer(...)) as client:
            resp = await client.post("/", ...)
    """
    return _serve_proxy
