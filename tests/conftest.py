from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, List

import httpx
import pytest

from settings import Settings

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        openai_api_key="sk-test",
        assistant_id="asst_test",
        assistant_api_base="https://assistant.test/v1",
        probe_api_base="https://probe.test/export",
        probe_api_key="probe-key",
        logger_aliases={"North Field": "LOG-100", "pivot": "LOG-200"},
        default_logger=None,
        probe_timezone="America/Chicago",
    )


@pytest.fixture()
def make_settings(settings: Settings) -> Callable[..., Settings]:
    def factory(**overrides: Any) -> Settings:
        return replace(settings, **overrides)

    return factory


class RecordingTransport:
    """Serve requests through ``handler`` and remember each one."""

    def __init__(self, handler: Handler) -> None:
        self.requests: List[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), **kwargs)


def json_response(payload: Dict[str, Any], status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)
