from typing import Any, Iterator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from app.api import get_bridge
from app.main import create_app
from services.assistant import AssistantAPIError
from services.bridge import ConfigurationError, build_default_bridge
from services.orchestrator import STILL_WORKING_REPLY, ChatOutcome, RunFailedError
from services.weather import WeatherLookupError, WeatherReport


class FakeBridge:
    def __init__(self, outcome: Optional[ChatOutcome] = None, error: Optional[Exception] = None) -> None:
        self.outcome = outcome or ChatOutcome(
            thread_id="thread_1", response="Soil is moist.", run_status="completed"
        )
        self.error = error
        self.chats: List[Tuple[str, Optional[str]]] = []
        self.resumes: List[bool] = []

    async def chat(
        self, message: str, thread_id: Optional[str] = None, resume: bool = False
    ) -> ChatOutcome:
        self.chats.append((message, thread_id))
        self.resumes.append(resume)
        if self.error is not None:
            raise self.error
        return self.outcome

    async def weather_lookup(self, query: Optional[str] = None, zip_code: Optional[str] = None) -> WeatherReport:
        if self.error is not None:
            raise self.error
        return WeatherReport(
            location="Holdrege, US",
            latitude=40.44,
            longitude=-99.37,
            temperature_f=77.0,
            precipitation_mm=0.0,
            wind_mph=11.2,
        )


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def api_client(bridge: FakeBridge) -> Iterator[TestClient]:
    app = create_app()
    app.dependency_overrides[get_bridge] = lambda: bridge
    with TestClient(app) as client:
        yield client


def _use(api_client: TestClient, replacement: Any) -> None:
    api_client.app.dependency_overrides[get_bridge] = lambda: replacement


def test_lifespan_closes_bridge_and_clears_cache() -> None:
    app = create_app()

    with TestClient(app):
        bridge_during = build_default_bridge()
        assert bridge_during.http_client.is_closed is False

    assert bridge_during.http_client.is_closed is True
    assert bridge_during.assistant_http_client.is_closed is True
    try:
        assert build_default_bridge() is not bridge_during
    finally:
        build_default_bridge.cache_clear()


def test_chat_returns_reply(api_client: TestClient, bridge: FakeBridge) -> None:
    response = api_client.post("/chat", json={"message": "  How wet is it?  ", "threadId": "thread_1"})

    assert response.status_code == 200
    assert response.json() == {
        "threadId": "thread_1",
        "response": "Soil is moist.",
        "runStatus": "completed",
    }
    assert bridge.chats == [("How wet is it?", "thread_1")]


def test_chat_without_thread_id_starts_new_thread(api_client: TestClient, bridge: FakeBridge) -> None:
    api_client.post("/chat", json={"message": "hello", "threadId": ""})

    assert bridge.chats == [("hello", None)]


def test_chat_resume_flag_requires_thread(api_client: TestClient, bridge: FakeBridge) -> None:
    api_client.post("/chat", json={"message": "any update?", "threadId": "thread_1", "resume": True})
    api_client.post("/chat", json={"message": "any update?", "resume": True})
    api_client.post("/chat", json={"message": "any update?", "threadId": "thread_1", "resume": "yes"})

    assert bridge.resumes == [True, False, False]


@pytest.mark.parametrize(
    "body",
    [{}, {"message": ""}, {"message": "   "}, {"message": 42}, {"threadId": "thread_1"}],
)
def test_chat_missing_message_is_bad_request(api_client: TestClient, bridge: FakeBridge, body) -> None:
    response = api_client.post("/chat", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing message"}
    assert bridge.chats == []


def test_chat_unparseable_body_is_bad_request(api_client: TestClient) -> None:
    response = api_client.post(
        "/chat", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


def test_chat_rejects_other_methods(api_client: TestClient) -> None:
    assert api_client.get("/chat").status_code == 405
    assert api_client.put("/chat", json={"message": "hi"}).status_code == 405


def test_chat_budget_exhaustion_returns_progress(api_client: TestClient) -> None:
    _use(
        api_client,
        FakeBridge(
            ChatOutcome(thread_id="thread_slow", response=STILL_WORKING_REPLY, run_status="in_progress")
        ),
    )

    response = api_client.post("/chat", json={"message": "Summarize last week"})

    assert response.status_code == 200
    body = response.json()
    assert body["threadId"] == "thread_slow"
    assert body["runStatus"] == "in_progress"
    assert body["response"] == STILL_WORKING_REPLY


def test_chat_missing_credentials_is_server_error(api_client: TestClient) -> None:
    _use(api_client, FakeBridge(error=ConfigurationError("Missing OPENAI_API_KEY or ASSISTANT_ID in env.")))

    response = api_client.post("/chat", json={"message": "hi"})

    assert response.status_code == 500
    assert response.json() == {"error": "Missing OPENAI_API_KEY or ASSISTANT_ID in env."}


def test_chat_upstream_failure_is_bad_gateway(api_client: TestClient) -> None:
    _use(api_client, FakeBridge(error=AssistantAPIError("create run", 429, "rate limited")))

    response = api_client.post("/chat", json={"message": "hi"})

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "Assistant API error during create run"
    assert body["details"] == {"status": 429, "body": "rate limited"}


def test_chat_failed_run_is_bad_gateway(api_client: TestClient) -> None:
    _use(
        api_client,
        FakeBridge(error=RunFailedError("thread_1", "run_1", "failed", {"code": "server_error"})),
    )

    response = api_client.post("/chat", json={"message": "hi"})

    assert response.status_code == 502
    assert response.json()["details"] == {
        "threadId": "thread_1",
        "runId": "run_1",
        "lastError": {"code": "server_error"},
    }


def test_weather_route(api_client: TestClient) -> None:
    response = api_client.get("/weather", params={"q": "Holdrege, NE"})

    assert response.status_code == 200
    assert response.json()["location"] == "Holdrege, US"


def test_weather_route_not_found(api_client: TestClient) -> None:
    _use(api_client, FakeBridge(error=WeatherLookupError(404, "Location not found", "Nowhere")))

    response = api_client.get("/weather", params={"q": "Nowhere"})

    assert response.status_code == 404
    assert response.json() == {"error": "Location not found", "details": {"query": "Nowhere"}}


def test_health_and_root(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").json()["status"] == "ok"


def test_cors_preflight_allows_post(api_client: TestClient) -> None:
    response = api_client.options(
        "/chat",
        headers={
            "Origin": "https://widget.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
