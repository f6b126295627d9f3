"""
pow-proxy utilities module.
"""

from pow_proxy.utils.config import Settings, get_settings, resolve_provider_url
from pow_proxy.utils.logging import configure_logging, get_logger

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "resolve_provider_url",
    # Logging
    "configure_logging",
    "get_logger",
]
