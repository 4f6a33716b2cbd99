"""
Logging setup for the bulk import service.

Imports run on background stream threads and worker pool threads, so every
line carries the thread name and the id of the import it belongs to. Code that
works on behalf of one import wraps itself in ``bind_import_id``; everything
else logs ``import=-``.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from logging.config import dictConfig
from typing import Iterator, Optional


LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | import=%(import_id)s | %(name)s | %(message)s"

# boto3 and friends log every request at INFO/DEBUG.
QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")

_context = threading.local()
_is_configured = False


@contextmanager
def bind_import_id(import_history_id: Optional[str]) -> Iterator[None]:
    """Tag log records emitted by the current thread with ``import_history_id``."""
    previous = getattr(_context, "import_id", None)
    _context.import_id = import_history_id
    try:
        yield
    finally:
        _context.import_id = previous


def current_import_id() -> Optional[str]:
    return getattr(_context, "import_id", None)


class ImportContextFilter(logging.Filter):
    """Adds ``import_id`` to every record so the shared format can render it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "import_id"):
            record.import_id = current_import_id() or "-"
        return True


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install the console handler once per process.

    Args:
        level: Log level for the root and ``app`` loggers, defaults to INFO
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "import_context": {"()": ImportContextFilter},
            },
            "formatters": {
                "import": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "import",
                    "filters": ["import_context"],
                    "level": log_level,
                }
            },
            "root": {"handlers": ["console"], "level": log_level},
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        }
    )

    logging.getLogger("app").setLevel(log_level)

    _is_configured = True
