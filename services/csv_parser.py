"""Parsing of probe telemetry CSV payloads into readings."""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Dict, List, Optional

from models.records import Reading, Value

logger = logging.getLogger(__name__)

_TIMESTAMP_FORMATS = (
    "%Y%m%d%H%M%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%y %H:%M",
    "%m/%d/%Y",
)


@dataclass
class ParsedCsv:
    """Headers and readings recovered from one CSV payload."""

    headers: List[str] = field(default_factory=list)
    readings: List[Reading] = field(default_factory=list)
    skipped_rows: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_timestamp(value: str, tz: Optional[tzinfo] = None) -> datetime:
    """Parse a probe timestamp into a naive probe-local ``datetime``.

    Raises ``ValueError`` for empty or unrecognised values.
    """
    candidate = (value or "").strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    parsed: Optional[datetime] = None
    if not candidate.isdigit():
        iso_candidate = candidate[:-1] + "+00:00" if candidate.endswith("Z") else candidate
        try:
            parsed = datetime.fromisoformat(iso_candidate)
        except ValueError:
            parsed = None

    if parsed is None:
        for fmt in _TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(candidate, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise ValueError(f"Invalid timestamp format: {candidate!r}")

    if parsed.tzinfo is not None:
        if tz is not None:
            parsed = parsed.astimezone(tz)
        parsed = parsed.replace(tzinfo=None)
    return parsed


def coerce_value(raw: Optional[str]) -> Optional[Value]:
    """Turn a raw CSV cell into a float, a string, or ``None`` when blank."""
    if raw is None:
        return None
    candidate = raw.strip()
    if not candidate:
        return None
    try:
        number = float(candidate)
    except ValueError:
        return candidate
    return number if math.isfinite(number) else candidate


def parse_csv(text: str, tz: Optional[tzinfo] = None) -> ParsedCsv:
    """Parse a telemetry CSV whose first column is the reading timestamp."""
    lines = [line for line in (text or "").lstrip("\ufeff").splitlines() if line.strip()]
    if len(lines) < 2:
        return ParsedCsv(error="insufficient data: expected a header and at least one row")

    reader = csv.reader(io.StringIO("\n".join(lines)))
    headers = [name.strip() for name in next(reader)]
    if not headers or not headers[0]:
        return ParsedCsv(headers=headers, error="CSV is missing a timestamp header")

    result = ParsedCsv(headers=headers)
    for row_number, row in enumerate(reader, start=2):
        if not row:
            continue
        try:
            timestamp = parse_timestamp(row[0], tz)
        except ValueError:
            result.skipped_rows += 1
            logger.debug(
                "Skipping row with unparseable timestamp",
                extra={"reason": f"row {row_number}"},
            )
            continue

        values: Dict[str, Value] = {}
        for name, raw in zip(headers[1:], row[1:]):
            value = coerce_value(raw)
            if value is not None:
                values[name] = value
        result.readings.append(Reading(timestamp=timestamp, values=values))

    logger.debug(
        "Parsed telemetry CSV",
        extra={"row_count": len(result.readings), "skipped_rows": result.skipped_rows},
    )
    return result
