"""
Main entry point for pow-proxy.
"""

import argparse
import sys

from pow_proxy.proxy.errors import ProxyStartError
from pow_proxy.proxy.server import ProxyServer
from pow_proxy.utils.config import Settings, get_settings
from pow_proxy.utils.logging import configure_logging, get_logger
from pow_proxy.utils.parameters import ParameterError, describe_parameters, validate_proxy_settings


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="pow-proxy",
        description="pow-proxy - forward local JSON-RPC requests to a remote Ethereum provider",
    )
    parser.add_argument("--port", "-p", type=str, help="Port to listen on")
    parser.add_argument(
        "--provider-url",
        type=str,
        help="Provider URL to forward to (default: hosted endpoint for --network)",
    )
    parser.add_argument("--network", type=str, help="Network name for the hosted endpoint")
    parser.add_argument("--project-id", type=str, help="Project ID for the hosted endpoint")
    parser.add_argument("--host", type=str, help="Bind address (default: all interfaces)")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds allowed for each whole forward, 0 to disable",
    )
    parser.add_argument(
        "--legacy-errors",
        action="store_true",
        help="Answer errors with HTTP 200 and the error text, like older proxies",
    )
    parser.add_argument("--log-level", type=str, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument(
        "--describe",
        action="store_true",
        help="Print the configurable parameters and exit",
    )
    return parser


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with command-line values layered on top."""
    proxy_updates = {
        key: value
        for key, value in (
            ("port", args.port),
            ("provider_url", args.provider_url),
            ("host", args.host),
            ("request_timeout", args.timeout),
        )
        if value is not None
    }
    if args.legacy_errors:
        proxy_updates["error_status_codes"] = False

    infura_updates = {
        key: value
        for key, value in (("network", args.network), ("project_id", args.project_id))
        if value is not None
    }

    general_updates = {}
    if args.log_level is not None:
        general_updates["log_level"] = args.log_level
    if args.json_logs:
        general_updates["json_logs"] = True

    return settings.model_copy(
        update={
            "proxy": settings.proxy.model_copy(update=proxy_updates),
            "infura": settings.infura.model_copy(update=infura_updates),
            "general": settings.general.model_copy(update=general_updates),
        }
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.describe:
        print(describe_parameters())
        return 0

    settings = apply_args(get_settings(), args)
    configure_logging(
        log_level=settings.general.log_level,
        json_format=settings.general.json_logs,
    )
    logger = get_logger(__name__)

    try:
        validate_proxy_settings(settings)
    except ParameterError as e:
        logger.error("Invalid configuration", parameter=e.parameter_id, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 2

    server = ProxyServer.from_settings(settings)
    logger.info(
        "pow-proxy starting",
        version=settings.general.version,
        provider_url=server.provider_url,
        legacy_errors=not settings.proxy.error_status_codes,
    )

    try:
        server.start()
    except ProxyStartError as e:
        logger.error("Proxy server failed to start", port=e.port, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass

    return 0


if __name__ == "__main__":
    sys.exit(main())
