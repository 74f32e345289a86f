"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

Value = Union[float, str]


class ColumnKind(str, Enum):
    """Semantic classes of probe CSV columns."""

    temperature = "temperature"
    moisture = "moisture"
    battery = "battery"


@dataclass(frozen=True, slots=True)
class Reading:
    """A single timestamped row parsed from telemetry CSV."""

    timestamp: datetime
    values: Dict[str, Value] = field(default_factory=dict)

    @property
    def day_key(self) -> str:
        return self.timestamp.strftime("%Y-%m-%d")

    @property
    def month_key(self) -> str:
        return self.timestamp.strftime("%Y-%m")


@dataclass(frozen=True, slots=True)
class UpstreamError:
    """A non-2xx or transport failure from an upstream HTTP API."""

    status_code: Optional[int]
    body: str
    source: str = "telemetry"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": f"{self.source} request failed",
            "status": self.status_code,
            "body": self.body,
        }
