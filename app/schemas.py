"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunStatus(str, Enum):
    """Run lifecycle states reported by the assistant API."""

    queued = "queued"
    in_progress = "in_progress"
    requires_action = "requires_action"
    cancelling = "cancelling"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    expired = "expired"
    incomplete = "incomplete"


class ChatResponse(BaseModel):
    """Reply payload; also used for "still working" partial progress."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., alias="threadId", description="Thread to resume on the next call.")
    response: str
    run_status: RunStatus = Field(..., alias="runStatus")


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None


class WeatherResponse(BaseModel):
    location: str
    latitude: float
    longitude: float
    temperature_f: Optional[float] = None
    precipitation_mm: Optional[float] = None
    wind_mph: Optional[float] = None
