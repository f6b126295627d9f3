"""
Structured logging for pow-proxy.

The proxy runs as a sidecar, so stderr is the primary sink and is always
installed. A log file is optional: it is opened only when ``general.logs_dir``
(or an explicit ``log_file``) is set, and a directory that cannot be created
or written never stops the proxy from starting.
"""

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

from pow_proxy.utils.config import get_settings


def _add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict["timestamp"] = datetime.now(UTC).isoformat().replace("+00:00", "Z")
    return event_dict


def _add_log_level(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict["level"] = method_name.upper()
    return event_dict


def default_log_file(logs_dir: str | Path) -> Path:
    """Daily log file inside ``logs_dir``.

    Relative directories resolve against the working directory, never against
    the installed package.
    """
    return Path(logs_dir).expanduser() / f"pow_proxy_{datetime.now().strftime('%Y%m%d')}.log"


def _open_file_handler(log_file: Path) -> tuple[logging.Handler | None, OSError | None]:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_file, encoding="utf-8"), None
    except OSError as e:
        return None, e


def _renderer(json_format: bool) -> list[Processor]:
    if json_format:
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool | None = None,
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Uses settings if None.
        log_file: Extra file sink. Falls back to a daily file in
            ``general.logs_dir`` when that is set; stderr only otherwise.
        json_format: JSON lines (True) or console output (False).
            Uses settings if None.
    """
    general = get_settings().general

    if log_level is None:
        log_level = general.log_level
    if json_format is None:
        json_format = general.json_logs
    if log_file is None and general.logs_dir:
        log_file = default_log_file(general.logs_dir)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: OSError | None = None
    if log_file is not None:
        file_handler, file_error = _open_file_handler(Path(log_file))
        if file_handler is not None:
            handlers.append(file_handler)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=handlers,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            _add_timestamp,
            _add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            *_renderer(json_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if file_error is not None:
        get_logger(__name__).warning(
            "Log file unavailable, logging to stderr only",
            log_file=str(log_file),
            error=str(file_error),
        )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)
