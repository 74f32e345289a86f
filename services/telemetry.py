"""HTTP client for the soil-probe telemetry API."""

from __future__ import annotations

import logging
import time
from datetime import tzinfo
from typing import Any, Dict, Iterable, List, Optional, Union

import httpx

from models.records import ColumnKind, Reading, UpstreamError
from services.columns import kind_predicate
from services.csv_parser import parse_csv
from services.rollup import (
    Buckets,
    RollupEngine,
    buckets_to_dict,
    clip_buckets,
    latest_reading,
    merge_buckets,
    reading_to_dict,
)
from services.window import TimeWindow
from settings import Settings

logger = logging.getLogger(__name__)


class TelemetryClient:
    """Fetches probe CSV one calendar month at a time and reduces it."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self._tz = tz

    async def fetch_month_chunks(
        self, logger_id: str, window: TimeWindow
    ) -> Union[List[str], UpstreamError]:
        """Return one CSV body per month of ``window``, or the first failure."""
        if not self.settings.probe_api_base:
            return UpstreamError(status_code=None, body="telemetry API is not configured")

        bodies: List[str] = []
        for chunk in window.months():
            result = await self._fetch_csv(logger_id, chunk)
            if isinstance(result, UpstreamError):
                return result
            bodies.append(result)
        return bodies

    async def summarize(
        self,
        logger_id: str,
        window: TimeWindow,
        kinds: Optional[Iterable[ColumnKind]] = None,
        period: str = "day",
    ) -> Dict[str, Any]:
        engine = RollupEngine(kind_predicate(kinds), period=period)
        payload = self._payload_header(logger_id, window)
        payload["period"] = period

        chunks = await self.fetch_month_chunks(logger_id, window)
        if isinstance(chunks, UpstreamError):
            return {**payload, **chunks.to_dict()}

        merged: Buckets = {}
        rows = skipped = 0
        for body in chunks:
            parsed = parse_csv(body, self._tz)
            if not parsed.ok:
                if parsed.headers:
                    return {**payload, "error": parsed.error}
                continue
            rows += len(parsed.readings)
            skipped += parsed.skipped_rows
            merged = merge_buckets(merged, engine.rollup(parsed.headers, parsed.readings))

        if not rows:
            return {**payload, "error": "insufficient data: no readings in window"}

        clipped = clip_buckets(merged, window.start_day, window.end_day)
        logger.info(
            "Summarized telemetry",
            extra={"logger_id": logger_id, "row_count": rows, "skipped_rows": skipped},
        )
        payload.update(
            rows=rows,
            skipped_rows=skipped,
            buckets=buckets_to_dict(clipped, self.settings.temperature_unit),
        )
        return payload

    async def latest(
        self,
        logger_id: str,
        window: TimeWindow,
        kinds: Optional[Iterable[ColumnKind]] = None,
    ) -> Dict[str, Any]:
        payload = self._payload_header(logger_id, window)
        chunks = await self.fetch_month_chunks(logger_id, window)
        if isinstance(chunks, UpstreamError):
            return {**payload, **chunks.to_dict()}

        readings: List[Reading] = []
        for body in chunks:
            parsed = parse_csv(body, self._tz)
            if not parsed.ok and parsed.headers:
                return {**payload, "error": parsed.error}
            readings.extend(
                reading for reading in parsed.readings if window.contains(reading.timestamp)
            )

        reading = latest_reading(readings, kind_predicate(kinds))
        if reading is None:
            return {**payload, "error": "insufficient data: no readings in window"}
        payload["latest"] = reading_to_dict(reading, self.settings.temperature_unit)
        return payload

    def _payload_header(self, logger_id: str, window: TimeWindow) -> Dict[str, Any]:
        return {
            "logger": logger_id,
            "window": window.to_dict(),
            "temperature_unit": self.settings.temperature_unit,
        }

    async def _fetch_csv(self, logger_id: str, chunk: TimeWindow) -> Union[str, UpstreamError]:
        params = {
            "logger": logger_id,
            "apikey": self.settings.probe_api_key or "",
            "start": chunk.start_stamp,
            "end": chunk.end_stamp,
        }
        context = {
            "logger_id": logger_id,
            "window_start": chunk.start_stamp,
            "window_end": chunk.end_stamp,
        }
        started = time.perf_counter()
        try:
            response = await self._client.get(self.settings.probe_api_base or "", params=params)
        except httpx.HTTPError as exc:
            logger.warning("Telemetry request failed", extra={**context, "reason": str(exc)})
            return UpstreamError(status_code=None, body=str(exc))

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if not response.is_success:
            logger.warning(
                "Telemetry request returned an error",
                extra={**context, "status_code": response.status_code, "elapsed_ms": elapsed_ms},
            )
            return UpstreamError(status_code=response.status_code, body=response.text[:500])

        logger.debug("Fetched telemetry chunk", extra={**context, "elapsed_ms": elapsed_ms})
        return response.text
