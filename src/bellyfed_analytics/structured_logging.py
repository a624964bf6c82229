"""JSON structured logging for CloudWatch Logs Insights.

Library modules log through ``logging.getLogger(__name__)`` with context in
``extra``. Lambda entry points call :func:`configure_logging` so those
records come out as the same JSON lines as :class:`StructuredLogger`.
"""

import json
import logging
import os
import traceback
from datetime import UTC, datetime
from typing import Any

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def _threshold() -> int:
    return LEVELS.get(os.environ.get("LOG_LEVEL", "INFO").upper(), LEVELS["INFO"])


class StructuredLogger:
    """JSON-formatted logger for CloudWatch Logs Insights.

    Emits one JSON object per line on stdout. The level threshold is read
    from ``LOG_LEVEL`` on every call so tests and handlers can change it
    without rebuilding loggers.
    """

    def __init__(self, name: str):
        self._name = name

    def log(self, level: str, message: str, **extra: Any) -> None:
        if LEVELS[level] < _threshold():
            return
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "logger": self._name,
            "message": message,
            **extra,
        }
        print(json.dumps(log_entry, default=str))

    def debug(self, message: str, **extra: Any) -> None:
        self.log("DEBUG", message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.log("INFO", message, **extra)

    def warning(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        if exc_info:
            extra["exception"] = traceback.format_exc()
        self.log("WARNING", message, **extra)

    def error(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        if exc_info:
            extra["exception"] = traceback.format_exc()
        self.log("ERROR", message, **extra)


class StructuredLogHandler(logging.Handler):
    """Renders standard library log records as StructuredLogger JSON lines."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
            if record.exc_info:
                extra["exception"] = "".join(traceback.format_exception(*record.exc_info))
            level = record.levelname if record.levelname in LEVELS else "INFO"
            StructuredLogger(record.name).log(level, record.getMessage(), **extra)
        except Exception:
            self.handleError(record)


def configure_logging(name: str = "bellyfed_analytics") -> logging.Logger:
    """
    Send a package's log records to stdout as JSON lines.

    The ``LOG_LEVEL`` threshold is applied per record, so the logger itself
    passes everything through. Records stop here instead of also reaching
    the runtime's root handler. Calling this again is a no-op.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(h, StructuredLogHandler) for h in logger.handlers):
        logger.addHandler(StructuredLogHandler())
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
    return logger
