"""Logging setup for Pacer.

Engines log with ``extra=`` context (``user_id``, ``stage``, ``plan_id``,
``timer``); the JSON formatter lifts those onto the top level of each line.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any, Dict

_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_LEVEL_COLORS = {
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[31m",
}

# Per-signal and per-timer lines are DEBUG; only the dev console wants them.
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg")
_CHATTY_LOGGERS = ("pacer.apps.core.signals", "pacer.apps.core.timers")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in payload:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Plain text for local runs; warnings and errors are colored on a TTY."""

    def __init__(self, *args: Any, color: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._color = color

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        prefix = _LEVEL_COLORS.get(record.levelno) if self._color else None
        return f"{prefix}{formatted}\033[0m" if prefix else formatted


def configure_logging() -> None:
    """Configure the root logger from ``PACER_LOG_LEVEL``, ``PACER_LOG_FORMAT`` and ``PACER_ENVIRONMENT``."""

    environment = os.getenv("PACER_ENVIRONMENT", "dev").lower()
    local = environment in {"local", "dev", "test"}
    log_level = os.getenv("PACER_LOG_LEVEL", "DEBUG" if local else "INFO").upper()
    log_format = os.getenv("PACER_LOG_FORMAT", "json").lower()

    loggers: Dict[str, Dict[str, Any]] = {name: {"level": "WARNING"} for name in _QUIET_LOGGERS}
    if not local:
        loggers.update({name: {"level": "INFO"} for name in _CHATTY_LOGGERS})

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JsonFormatter},
                "text": {
                    "()": ConsoleFormatter,
                    "fmt": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "color": local and os.getenv("PACER_LOG_COLOR", "1") == "1",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if log_format == "json" else "text",
                    "level": log_level,
                }
            },
            "loggers": loggers,
            "root": {"handlers": ["console"], "level": log_level},
        }
    )


__all__ = ["ConsoleFormatter", "JsonFormatter", "configure_logging"]
