"""Daily and monthly rollups of probe readings."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence

from models.records import ColumnKind, Reading, Value
from services.columns import ColumnPredicate, classify_column, kind_predicate

PERIODS = ("day", "month")

_NON_DIGITS = re.compile(r"\D")


def _as_number(value: Optional[Value]) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(value)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def convert_temperature(value: float, unit: str) -> float:
    """Convert a Celsius probe value into ``unit`` (``C`` or ``F``)."""
    if unit.upper() == "F":
        return value * 9 / 5 + 32
    return value


@dataclass
class ColumnStats:
    """Running statistics for one column inside one bucket."""

    samples: int = 0
    total: float = 0.0
    min: Optional[float] = None
    min_at: Optional[datetime] = None
    max: Optional[float] = None
    max_at: Optional[datetime] = None
    last: Optional[float] = None
    last_at: Optional[datetime] = None

    def add(self, value: float, at: datetime) -> None:
        self.samples += 1
        self.total += value
        if self.min is None or value < self.min:
            self.min = value
            self.min_at = at
        if self.max is None or value > self.max:
            self.max = value
            self.max_at = at
        if self.last_at is None or at >= self.last_at:
            self.last = value
            self.last_at = at

    @property
    def avg(self) -> Optional[float]:
        if not self.samples:
            return None
        return self.total / self.samples


@dataclass
class Bucket:
    """Aggregate of every reading that falls into one day or month."""

    key: str
    count: int = 0
    first_at: Optional[datetime] = None
    last_at: Optional[datetime] = None
    columns: Dict[str, ColumnStats] = field(default_factory=dict)


Buckets = Dict[str, Bucket]


class RollupEngine:
    """Single-pass reduction of readings into per-period buckets."""

    def __init__(
        self,
        predicate: Optional[ColumnPredicate] = None,
        period: str = "day",
    ) -> None:
        if period not in PERIODS:
            raise ValueError(f"Unsupported rollup period: {period!r}")
        self.predicate = predicate or kind_predicate()
        self.period = period
        self._key: Callable[[Reading], str] = (
            (lambda reading: reading.day_key)
            if period == "day"
            else (lambda reading: reading.month_key)
        )

    def rollup(self, headers: Sequence[str], readings: Iterable[Reading]) -> Buckets:
        columns = [name for name in headers if self.predicate(name)]
        buckets: Buckets = {}

        for reading in readings:
            key = self._key(reading)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = Bucket(key=key)

            bucket.count += 1
            at = reading.timestamp
            if bucket.first_at is None or at < bucket.first_at:
                bucket.first_at = at
            if bucket.last_at is None or at >= bucket.last_at:
                bucket.last_at = at

            for name in columns:
                number = _as_number(reading.values.get(name))
                if number is None:
                    continue
                stats = bucket.columns.get(name)
                if stats is None:
                    stats = bucket.columns[name] = ColumnStats()
                stats.add(number, at)

        return buckets


def merge_buckets(*bucket_maps: Mapping[str, Bucket]) -> Buckets:
    """Union bucket maps by key; later maps win on collision."""
    merged: Buckets = {}
    for buckets in bucket_maps:
        merged.update(buckets)
    return merged


def normalize_day_key(value: object) -> str:
    """Reduce a date-ish value to ``YYYYMMDD`` (or a shorter digit prefix)."""
    return _NON_DIGITS.sub("", str(value or ""))[:8]


def clip_buckets(
    buckets: Mapping[str, Bucket],
    start_day: Optional[str] = None,
    end_day: Optional[str] = None,
) -> Buckets:
    """Keep buckets whose day lies within ``[start_day, end_day]``.

    A missing bound falls back to the earliest/latest known key so an open
    range never empties the result.
    """
    if not buckets:
        return {}
    normalized = {key: normalize_day_key(key) for key in buckets}
    start = normalize_day_key(start_day) if start_day else min(normalized.values())
    end = normalize_day_key(end_day) if end_day else max(normalized.values())
    # Month keys normalize to YYYYMM; compare on the shared prefix length.
    return {
        key: bucket
        for key, bucket in buckets.items()
        if start[: len(normalized[key])] <= normalized[key] <= end[: len(normalized[key])]
    }


def latest_reading(
    readings: Iterable[Reading],
    predicate: Optional[ColumnPredicate] = None,
) -> Optional[Reading]:
    """Return the temporally latest reading, restricted to selected columns."""
    select = predicate or kind_predicate()
    latest: Optional[Reading] = None
    for reading in readings:
        if latest is None or reading.timestamp >= latest.timestamp:
            latest = reading
    if latest is None:
        return None
    return Reading(
        timestamp=latest.timestamp,
        values={name: value for name, value in latest.values.items() if select(name)},
    )


def _round(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 2)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


def column_to_dict(name: str, stats: ColumnStats, unit: str = "C") -> Dict[str, Any]:
    is_temperature = classify_column(name) is ColumnKind.temperature

    def convert(value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        if is_temperature:
            value = convert_temperature(value, unit)
        return round(value, 2)

    return {
        "samples": stats.samples,
        "avg": convert(stats.avg),
        "min": convert(stats.min),
        "min_at": _iso(stats.min_at),
        "max": convert(stats.max),
        "max_at": _iso(stats.max_at),
        "last": convert(stats.last),
        "last_at": _iso(stats.last_at),
    }


def bucket_to_dict(bucket: Bucket, unit: str = "C") -> Dict[str, Any]:
    return {
        "count": bucket.count,
        "first_at": _iso(bucket.first_at),
        "last_at": _iso(bucket.last_at),
        "columns": {
            name: column_to_dict(name, stats, unit)
            for name, stats in sorted(bucket.columns.items())
        },
    }


def buckets_to_dict(buckets: Mapping[str, Bucket], unit: str = "C") -> Dict[str, Any]:
    return {key: bucket_to_dict(buckets[key], unit) for key in sorted(buckets)}


def reading_to_dict(reading: Reading, unit: str = "C") -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, value in reading.values.items():
        number = _as_number(value)
        if number is None:
            values[name] = value
        elif classify_column(name) is ColumnKind.temperature:
            values[name] = _round(convert_temperature(number, unit))
        else:
            values[name] = _round(number)
    return {"timestamp": reading.timestamp.isoformat(), "values": values}
