"""
PoW Proxy Server.

Forwards JSON-RPC requests from local Ethereum clients to a remote provider
(an explicit URL, or the hosted Infura endpoint for the configured network).
"""

from pow_proxy.proxy.errors import (
    ClientProtocolError,
    ProxyError,
    ProxyErrorCode,
    ProxyStartError,
    UpstreamConnectError,
    UpstreamStreamError,
)
from pow_proxy.proxy.server import ProxyServer

__all__ = [
    "ProxyServer",
    "ProxyError",
    "ProxyErrorCode",
    "ProxyStartError",
    "ClientProtocolError",
    "UpstreamConnectError",
    "UpstreamStreamError",
]
