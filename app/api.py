"""HTTP route definitions for the service."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from app.schemas import ChatResponse, ErrorResponse, WeatherResponse
from services.assistant import AssistantAPIError
from services.bridge import ChatBridge, ConfigurationError, build_default_bridge
from services.orchestrator import RunFailedError
from services.weather import WeatherLookupError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_bridge() -> ChatBridge:
    return build_default_bridge()


def _error(status_code: int, error: str, details: Any = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


async def _read_json(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Send a chat message to the probe assistant.",
)
async def chat(
    request: Request,
    bridge: ChatBridge = Depends(get_bridge),
) -> Any:
    body = await _read_json(request)
    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        return _error(status.HTTP_400_BAD_REQUEST, "Missing message")

    thread_id: Optional[str] = body.get("threadId")
    if not isinstance(thread_id, str) or not thread_id.strip():
        thread_id = None
    resume = body.get("resume") is True and thread_id is not None

    try:
        outcome = await bridge.chat(message.strip(), thread_id, resume=resume)
    except ConfigurationError as exc:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    except AssistantAPIError as exc:
        logger.error(
            "Assistant call failed",
            extra={"thread_id": thread_id, "status_code": exc.status_code, "reason": exc.operation},
        )
        return _error(
            status.HTTP_502_BAD_GATEWAY,
            f"Assistant API error during {exc.operation}",
            {"status": exc.status_code, "body": exc.body},
        )
    except RunFailedError as exc:
        logger.error(
            "Run did not complete",
            extra={"thread_id": exc.thread_id, "run_id": exc.run_id, "run_status": exc.status},
        )
        return _error(
            status.HTTP_502_BAD_GATEWAY,
            f"Assistant run {exc.status}",
            {"threadId": exc.thread_id, "runId": exc.run_id, "lastError": exc.details},
        )

    return ChatResponse(
        thread_id=outcome.thread_id,
        response=outcome.response,
        run_status=outcome.run_status,
    )


@router.get(
    "/weather",
    response_model=WeatherResponse,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Current weather for a place name or US ZIP code.",
)
async def weather(
    q: Optional[str] = Query(default=None, description="Place name, e.g. 'Holdrege, NE'."),
    zip: Optional[str] = Query(default=None, description="Five-digit US ZIP code."),
    bridge: ChatBridge = Depends(get_bridge),
) -> Any:
    try:
        report = await bridge.weather_lookup(query=q, zip_code=zip)
    except WeatherLookupError as exc:
        return _error(exc.status_code, exc.message, {"query": exc.query} if exc.query else None)
    return WeatherResponse(**report.to_dict())


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "POST /chat with {message, threadId?, resume?}."}
