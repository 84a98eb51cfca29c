from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any

SYSLOG_IDENT = "btrfs-snap"
SYSLOG_SOCKET = "/dev/log"


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.hostname = os.getenv("HOSTNAME", "localhost")

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "hostname": self.hostname,
            "pid": record.process,
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_obj.update(record.extra_fields)

        return json.dumps(log_obj)


class _MaxLevelFilter(logging.Filter):
    """Pass only records strictly below ``level``."""

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _stream_handlers(json_output: bool, quiet: bool) -> list[logging.Handler]:
    # Informational output goes to stdout, problems always go to stderr.
    if json_output:
        out: logging.Handler = logging.StreamHandler(sys.stdout)
        err: logging.Handler = logging.StreamHandler(sys.stderr)
        out.setFormatter(JSONFormatter())
        err.setFormatter(JSONFormatter())
    else:
        from rich.console import Console
        from rich.logging import RichHandler

        out = RichHandler(
            console=Console(file=sys.stdout),
            rich_tracebacks=True,
            markup=False,
            show_time=True,
            show_level=True,
            show_path=False,
        )
        err = RichHandler(
            console=Console(file=sys.stderr),
            rich_tracebacks=True,
            markup=False,
            show_time=True,
            show_level=True,
            show_path=False,
        )
    out.addFilter(_MaxLevelFilter(logging.WARNING))
    err.setLevel(logging.WARNING)

    handlers = [err]
    if not quiet:
        handlers.insert(0, out)
    return handlers


def _syslog_handler(address: str = SYSLOG_SOCKET) -> logging.Handler | None:
    if not os.path.exists(address):
        return None
    try:
        handler = logging.handlers.SysLogHandler(
            address=address, facility=logging.handlers.SysLogHandler.LOG_USER
        )
    except OSError:
        return None
    handler.ident = f"{SYSLOG_IDENT}: "
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(
    level: str | None = None,
    json_output: bool = False,
    quiet: bool = False,
    syslog: bool = True,
) -> None:
    """Configure stdout/stderr logging plus an optional syslog sink."""
    lvl_str = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    lvl = getattr(logging, lvl_str, logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = _stream_handlers(json_output or os.getenv("LOG_FORMAT") == "json", quiet)
    if syslog:
        sys_handler = _syslog_handler()
        if sys_handler is not None:
            handlers.append(sys_handler)

    logging.basicConfig(level=lvl, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper to create extra fields for structured logging."""
    return {"extra_fields": kwargs}
