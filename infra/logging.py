"""
Bridge Logging
--------------
Structured logging with request_id propagation.

Design:
- Every execute() call runs inside a RequestContext
- request_id reaches every record under the 'bridge' namespace
- Console via rich, file via JSON lines with size-based rotation
- Nothing is configured at import time

Usage:
    from infra.logging import get_logger, RequestContext

    logger = get_logger("tools.registry")

    with RequestContext(ctx.request_id):
        logger.info("Dispatching tool")
"""

import contextvars
import json
import logging
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler


ROOT_LOGGER = "bridge"

_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return _request_id_var.get()


class RequestContext:
    """
    Context manager binding a request_id for the enclosed block.

    Safe across awaits: each asyncio task sees its own value.
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _request_id_var.set(self.request_id)
        return self.request_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _request_id_var.reset(self._token)
            self._token = None


class RequestIdFilter(logging.Filter):
    """Stamp request_id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    EXTRA_FIELDS = ("tool_name", "execution_id", "duration_ms", "success", "cache_hit", "error_code")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        return json.dumps(entry, default=str)


_configured = False
_log_file_path: Optional[Path] = None


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> Optional[Path]:
    """
    Configure the 'bridge' logger hierarchy. Idempotent.

    Returns the log file path when file output is enabled.
    """
    global _configured, _log_file_path

    if _configured:
        return _log_file_path

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    request_filter = RequestIdFilter()

    if console:
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter("[%(request_id)s] %(name)s: %(message)s"))
        handler.addFilter(request_filter)
        root.addHandler(handler)

    if file:
        log_path = Path(log_dir) if log_dir else Path("logs")
        log_path.mkdir(parents=True, exist_ok=True)
        _log_file_path = log_path / "bridge.log"

        file_handler = RotatingFileHandler(
            _log_file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(request_filter)
        root.addHandler(file_handler)

    _configured = True
    return _log_file_path


def reset_logging() -> None:
    """Drop handlers so configure_logging() can run again."""
    global _configured, _log_file_path

    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    _configured = False
    _log_file_path = None


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the 'bridge' namespace."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
