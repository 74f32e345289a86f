"""Routing of assistant tool calls to telemetry and weather lookups."""

from __future__ import annotations

import difflib
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from services.columns import parse_kinds
from services.telemetry import TelemetryClient
from services.weather import WeatherClient, WeatherLookupError
from services.window import ResolvedWindow, WindowResolver
from settings import Settings

logger = logging.getLogger(__name__)

UNKNOWN_TOOL = {"error": "unknown tool"}
NO_LOGGER = {"error": "no logger specified"}

_TOKEN_RE = re.compile(r"[A-Za-z0-9_\-]+")
_MODES = ("latest", "daily", "monthly")

ToolHandler = Callable[[Dict[str, Any], Optional[str]], Awaitable[Dict[str, Any]]]


def parse_arguments(raw: object) -> Dict[str, Any]:
    """Decode tool-call arguments; anything unparseable becomes ``{}``."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


class LoggerDirectory:
    """Resolves logger identities from ids, aliases or free text."""

    def __init__(self, aliases: Mapping[str, str], default_logger: Optional[str] = None) -> None:
        self._aliases = {name.lower(): logger_id for name, logger_id in aliases.items()}
        self._known_ids = {logger_id.lower(): logger_id for logger_id in aliases.values()}
        self.default_logger = default_logger

    def lookup(self, name: object) -> Optional[str]:
        """Map an explicit id or alias to a logger id (unknown ids pass through)."""
        if name is None:
            return None
        candidate = str(name).strip()
        if not candidate:
            return None
        return self._aliases.get(candidate.lower(), candidate)

    def detect(self, text: Optional[str]) -> List[str]:
        """Find loggers mentioned in ``text``, exact mentions first, then fuzzy."""
        if not text:
            return []
        lowered = text.lower()
        found: List[str] = []

        def add(logger_id: str) -> None:
            if logger_id not in found:
                found.append(logger_id)

        for alias, logger_id in self._aliases.items():
            if re.search(rf"(?<![\w-]){re.escape(alias)}(?![\w-])", lowered):
                add(logger_id)
        for known, logger_id in self._known_ids.items():
            if re.search(rf"(?<![\w-]){re.escape(known)}(?![\w-])", lowered):
                add(logger_id)
        if found:
            return found

        vocabulary = list(self._aliases) + list(self._known_ids)
        for token in _TOKEN_RE.findall(lowered):
            if len(token) < 4:
                continue
            for match in difflib.get_close_matches(token, vocabulary, n=1, cutoff=0.8):
                add(self._aliases.get(match) or self._known_ids[match])
        return found

    def resolve_one(self, args: Mapping[str, Any], text: Optional[str]) -> Optional[str]:
        for key in ("loggerId", "logger_id", "logger", "alias", "name"):
            logger_id = self.lookup(args.get(key))
            if logger_id:
                return logger_id
        detected = self.detect(text)
        if detected:
            return detected[0]
        return self.default_logger

    def resolve_many(self, args: Mapping[str, Any], text: Optional[str]) -> List[str]:
        resolved: List[str] = []
        for key in ("loggerIds", "logger_ids", "loggers", "aliases"):
            value = args.get(key)
            items = value if isinstance(value, list) else [value] if isinstance(value, str) else []
            for item in items:
                logger_id = self.lookup(item)
                if logger_id and logger_id not in resolved:
                    resolved.append(logger_id)
        if resolved:
            return resolved
        return self.detect(text)


class ToolDispatcher:
    """Executes one tool call and always produces an output for it."""

    def __init__(
        self,
        settings: Settings,
        telemetry: TelemetryClient,
        weather: WeatherClient,
        resolver: WindowResolver,
    ) -> None:
        self.settings = settings
        self.telemetry = telemetry
        self.weather = weather
        self.resolver = resolver
        self.directory = LoggerDirectory(settings.logger_aliases, settings.default_logger)
        self._handlers: Dict[str, ToolHandler] = {
            "get_probe_data": self._probe_data,
            "get_multi_probe_summary": self._multi_probe_summary,
            "get_weather": self._weather,
        }

    @property
    def tool_names(self) -> List[str]:
        return sorted(self._handlers)

    async def dispatch(self, tool_call: Mapping[str, Any], message: Optional[str] = None) -> Dict[str, str]:
        call_id = str(tool_call.get("id") or "")
        function = tool_call.get("function") or {}
        name = function.get("name") or ""
        args = parse_arguments(function.get("arguments"))
        context = {"tool_name": name, "tool_call_id": call_id}

        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("Unknown tool requested", extra=context)
            result: Dict[str, Any] = dict(UNKNOWN_TOOL)
        else:
            try:
                result = await handler(args, message)
            except Exception as exc:  # noqa: BLE001 - every call needs an output
                logger.exception("Tool call failed", extra=context)
                result = {"error": f"{name} failed: {exc}"}
            else:
                logger.info("Tool call completed", extra=context)

        return {
            "tool_call_id": call_id,
            "output": json.dumps(result, separators=(",", ":"), default=str),
        }

    def _window(self, args: Mapping[str, Any], message: Optional[str]) -> ResolvedWindow:
        return self.resolver.resolve(args, message)

    async def _probe_data(self, args: Dict[str, Any], message: Optional[str]) -> Dict[str, Any]:
        logger_id = self.directory.resolve_one(args, message)
        if not logger_id:
            return dict(NO_LOGGER)

        resolved = self._window(args, message)
        mode = str(args.get("mode") or "").strip().lower()
        if mode not in _MODES:
            mode = resolved.mode_hint or "daily"
        kinds = parse_kinds(args.get("kinds") or args.get("kind"))

        if mode == "latest":
            return await self.telemetry.latest(logger_id, resolved.window, kinds)
        period = "month" if mode == "monthly" else "day"
        return await self.telemetry.summarize(logger_id, resolved.window, kinds, period)

    async def _multi_probe_summary(
        self, args: Dict[str, Any], message: Optional[str]
    ) -> Dict[str, Any]:
        logger_ids = self.directory.resolve_many(args, message)
        if not logger_ids:
            return dict(NO_LOGGER)

        resolved = self._window(args, message)
        period = "month" if str(args.get("mode") or "").lower() == "monthly" else "day"
        kinds = parse_kinds(args.get("kinds") or args.get("kind"))

        summaries: Dict[str, Any] = {}
        for logger_id in logger_ids:
            summaries[logger_id] = await self.telemetry.summarize(
                logger_id, resolved.window, kinds, period
            )
        return {"window": resolved.window.to_dict(), "period": period, "loggers": summaries}

    async def _weather(self, args: Dict[str, Any], message: Optional[str]) -> Dict[str, Any]:
        query = args.get("location") or args.get("q") or args.get("city")
        zip_code = args.get("zip") or args.get("zip_code")
        try:
            report = await self.weather.lookup(
                query=str(query) if query else None,
                zip_code=str(zip_code) if zip_code else None,
            )
        except WeatherLookupError as exc:
            return {**exc.to_dict(), "status": exc.status_code}
        return report.to_dict()
