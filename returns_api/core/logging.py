"""
Logging setup for the API process and the accrual worker.

Records go to three places:

* stdout, coloured and human-readable;
* ``logs/returns-api.log``, one JSON object per line, rotated by size;
* ``logs/returns-api-error.log``, the same JSON but ERROR and above only.

The request ID set by ``RequestIDMiddleware`` lives in ``request_id_var``;
``RequestContextFilter`` stamps it onto each record so every line written
while serving a request can be traced back to it.  Ledger code passes
``investment_id`` / ``calculation_id`` / ``transaction_id`` through
``extra=`` and they land as top-level JSON keys.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from returns_api.core.config import settings

LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")
LOG_FILE = "returns-api.log"
ERROR_LOG_FILE = "returns-api-error.log"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_STRUCTURED_KEYS = (
    "investment_id",
    "calculation_id",
    "transaction_id",
    "method",
    "path",
    "status_code",
    "elapsed_ms",
)


def _utc(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with request ID and ledger ids when present."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _utc(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if getattr(record, "request_id", None):
            payload["request_id"] = record.request_id
        payload.update(
            (key, getattr(record, key))
            for key in _STRUCTURED_KEYS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    _LEVEL_COLOURS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    _RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self._LEVEL_COLOURS.get(record.levelno, "")
        request_id = getattr(record, "request_id", None)
        origin = f"{record.name} [{request_id[:8]}]" if request_id else record.name
        line = (
            f"{_utc(record):%Y-%m-%d %H:%M:%S} "
            f"{colour}{record.levelname:<8}{self._RESET} {origin}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _file_handler(filename: str, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        os.path.join(LOG_DIR, filename),
        maxBytes=settings.LOG_FILE_MAX_BYTES,
        backupCount=settings.LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """
    Install the handlers on the root logger.

    Safe to call more than once; a root logger that already has handlers
    (uvicorn with ``--log-config``, pytest's capture) is left alone.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level = logging.DEBUG if settings.DEBUG else logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root.setLevel(level)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ConsoleFormatter())

    os.makedirs(LOG_DIR, exist_ok=True)
    context = RequestContextFilter()
    for handler in (console, _file_handler(LOG_FILE, level), _file_handler(ERROR_LOG_FILE, logging.ERROR)):
        handler.addFilter(context)
        root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)

    root.info(
        "Logging at %s to %s (rotating at %d MB, %d backups)",
        logging.getLevelName(level),
        LOG_DIR,
        settings.LOG_FILE_MAX_BYTES // (1024 * 1024),
        settings.LOG_FILE_BACKUP_COUNT,
    )
