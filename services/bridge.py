"""Wiring of HTTP clients, telemetry, weather and the run orchestrator."""

from __future__ import annotations

from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import httpx

from services.assistant import AssistantClient
from services.dispatcher import ToolDispatcher
from services.orchestrator import ChatOutcome, RunOrchestrator
from services.telemetry import TelemetryClient
from services.weather import WeatherClient, WeatherReport
from services.window import WindowResolver
from settings import Settings, get_settings


class ConfigurationError(RuntimeError):
    """Required credentials are missing from the environment."""


class ChatBridge:
    """Owns the outbound clients for one process and exposes the chat flow."""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        assistant_http_client: Optional[httpx.AsyncClient] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        timeout = settings.http_timeout_seconds
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.assistant_http_client = assistant_http_client or httpx.AsyncClient(
            base_url=settings.assistant_api_base,
            headers=AssistantClient.default_headers(settings.openai_api_key or ""),
            timeout=timeout,
        )

        tz = ZoneInfo(settings.probe_timezone)
        self.resolver = WindowResolver(
            now=now,
            tz=tz,
            default_lookback=timedelta(hours=settings.default_lookback_hours),
        )
        self.telemetry = TelemetryClient(settings, self.http_client, tz)
        self.weather = WeatherClient(
            self.http_client,
            default_location=settings.weather_default_location,
            timezone=settings.probe_timezone,
        )
        self.dispatcher = ToolDispatcher(settings, self.telemetry, self.weather, self.resolver)
        self.assistant = AssistantClient(self.assistant_http_client, settings.assistant_id or "")
        self.orchestrator = RunOrchestrator(
            self.assistant,
            self.dispatcher,
            poll_interval=settings.run_poll_interval,
            budget_seconds=settings.run_budget_seconds,
        )

    async def chat(
        self, message: str, thread_id: Optional[str] = None, resume: bool = False
    ) -> ChatOutcome:
        if not self.settings.assistant_configured:
            raise ConfigurationError("Missing OPENAI_API_KEY or ASSISTANT_ID in env.")
        return await self.orchestrator.chat(message, thread_id, resume=resume)

    async def weather_lookup(
        self, query: Optional[str] = None, zip_code: Optional[str] = None
    ) -> WeatherReport:
        return await self.weather.lookup(query=query, zip_code=zip_code)

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.assistant_http_client.aclose()


@lru_cache
def build_default_bridge() -> ChatBridge:
    """Factory that wires the bridge from environment settings."""
    return ChatBridge(get_settings())
