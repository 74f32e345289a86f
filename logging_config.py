from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Iterable, Mapping, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "thread_id",
    "run_id",
    "run_status",
    "tool_name",
    "tool_call_id",
    "logger_id",
    "status_code",
    "window_start",
    "window_end",
    "row_count",
    "skipped_rows",
    "elapsed_ms",
    "reason",
)

# Chatty third-party loggers; httpx logs every request line at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Append ``key=value`` pairs for known ``extra`` fields to each record."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = " ".join(
            f"{key}={value}" for key, value in self._context(record).items()
        )
        if context:
            return f"{message} | {context}"
        return message

    def _context(self, record: logging.LogRecord) -> Mapping[str, Any]:
        values: dict[str, Any] = {}
        for key in self._extra_keys:
            value = getattr(record, key, None)
            if value is not None:
                values[key] = value
        return values


def configure_logging(level: str | int | None = None) -> None:
    """Configure process-wide logging once; later calls are no-ops."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {
                name: {"level": "WARNING", "propagate": True} for name in _QUIET_LOGGERS
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
