from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional


_OPENAI_KEY_ENV = "OPENAI_API_KEY"
_ASSISTANT_ID_ENV = "ASSISTANT_ID"
_ASSISTANT_BASE_ENV = "ASSISTANT_API_BASE"
_PROBE_BASE_ENV = "PROBE_API_BASE"
_PROBE_KEY_ENV = "PROBE_API_KEY"
_ALIASES_ENV = "PROBE_LOGGER_ALIASES"
_DEFAULT_LOGGER_ENV = "PROBE_DEFAULT_LOGGER"
_TIMEZONE_ENV = "PROBE_TIMEZONE"
_TEMPERATURE_UNIT_ENV = "TEMPERATURE_UNIT"
_LOOKBACK_ENV = "DEFAULT_LOOKBACK_HOURS"
_POLL_INTERVAL_ENV = "RUN_POLL_INTERVAL"
_RUN_BUDGET_ENV = "RUN_BUDGET_SECONDS"
_HTTP_TIMEOUT_ENV = "HTTP_TIMEOUT_SECONDS"
_WEATHER_LOCATION_ENV = "WEATHER_DEFAULT_LOCATION"
_CORS_ORIGINS_ENV = "CORS_ALLOW_ORIGINS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str]
    assistant_id: Optional[str]
    assistant_api_base: str
    probe_api_base: Optional[str]
    probe_api_key: Optional[str]
    logger_aliases: Dict[str, str] = field(default_factory=dict)
    default_logger: Optional[str] = None
    probe_timezone: str = "America/Chicago"
    temperature_unit: str = "C"
    default_lookback_hours: float = 168.0
    run_poll_interval: float = 0.7
    run_budget_seconds: float = 8.0
    http_timeout_seconds: float = 20.0
    weather_default_location: str = "Holdrege, NE"
    cors_allow_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    @property
    def assistant_configured(self) -> bool:
        return bool(self.openai_api_key and self.assistant_id)


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_aliases() -> Dict[str, str]:
    value = os.getenv(_ALIASES_ENV)
    if value is None or not value.strip():
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Ignoring logger alias table", extra={"reason": "invalid JSON"})
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring logger alias table", extra={"reason": "not an object"})
        return {}
    return {str(name).strip(): str(logger_id).strip() for name, logger_id in data.items()}


def _read_temperature_unit(default: str) -> str:
    candidate = _read_str_env(_TEMPERATURE_UNIT_ENV, default).upper()
    return candidate if candidate in {"C", "F"} else default


def _read_origins() -> tuple[str, ...]:
    raw = _read_str_env(_CORS_ORIGINS_ENV, "*")
    origins = tuple(part.strip() for part in raw.split(",") if part.strip())
    return origins or ("*",)


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        openai_api_key=_read_optional_env(_OPENAI_KEY_ENV),
        assistant_id=_read_optional_env(_ASSISTANT_ID_ENV),
        assistant_api_base=_read_str_env(_ASSISTANT_BASE_ENV, "https://api.openai.com/v1").rstrip("/"),
        probe_api_base=_read_optional_env(_PROBE_BASE_ENV),
        probe_api_key=_read_optional_env(_PROBE_KEY_ENV),
        logger_aliases=_read_aliases(),
        default_logger=_read_optional_env(_DEFAULT_LOGGER_ENV),
        probe_timezone=_read_str_env(_TIMEZONE_ENV, "America/Chicago"),
        temperature_unit=_read_temperature_unit("C"),
        default_lookback_hours=_read_positive_float(_LOOKBACK_ENV, 168.0),
        run_poll_interval=_read_positive_float(_POLL_INTERVAL_ENV, 0.7),
        run_budget_seconds=_read_positive_float(_RUN_BUDGET_ENV, 8.0),
        http_timeout_seconds=_read_positive_float(_HTTP_TIMEOUT_ENV, 20.0),
        weather_default_location=_read_str_env(_WEATHER_LOCATION_ENV, "Holdrege, NE"),
        cors_allow_origins=_read_origins(),
        log_level=_read_log_level("INFO"),
    )
