"""Unit tests for the rollup engine."""

from __future__ import annotations

from datetime import datetime

import pytest

from models.records import ColumnKind, Reading
from services.columns import kind_predicate
from services.csv_parser import parse_csv
from services.rollup import (
    RollupEngine,
    bucket_to_dict,
    clip_buckets,
    latest_reading,
    merge_buckets,
    normalize_day_key,
)


def _reading(stamp: str, **values: float) -> Reading:
    """Helper to build readings; ``T1_5`` becomes the ``T1(5)`` column."""

    columns = {name.replace("_", "(") + ")": value for name, value in values.items()}
    return Reading(timestamp=datetime.fromisoformat(stamp), values=columns)


def test_two_rows_same_day_scenario() -> None:
    parsed = parse_csv(
        "Date Time,T1(5),A1(5)\n"
        "2025-08-05 08:00:00,20.0,30.0\n"
        "2025-08-05 16:00:00,22.0,32.0\n"
    )

    buckets = RollupEngine().rollup(parsed.headers, parsed.readings)

    assert list(buckets) == ["2025-08-05"]
    bucket = buckets["2025-08-05"]
    assert bucket.count == 2
    temperature = bucket.columns["T1(5)"]
    assert temperature.min == 20.0
    assert temperature.min_at == datetime(2025, 8, 5, 8, 0)
    assert temperature.max == 22.0
    assert temperature.max_at == datetime(2025, 8, 5, 16, 0)
    assert temperature.avg == 21.0
    assert temperature.last == 22.0
    moisture = bucket.columns["A1(5)"]
    assert (moisture.min, moisture.max, moisture.avg, moisture.last) == (30.0, 32.0, 31.0, 32.0)


def test_empty_readings_produce_no_buckets() -> None:
    assert RollupEngine().rollup(["Date Time", "T1(5)"], []) == {}


def test_min_avg_max_ordering_holds_per_column() -> None:
    readings = [
        _reading("2025-08-05T01:00:00", T1_5=18.5, A1_5=40.0),
        _reading("2025-08-05T02:00:00", T1_5=25.0, A1_5=10.0),
        _reading("2025-08-05T03:00:00", T1_5=19.0, A1_5=22.0),
    ]

    buckets = RollupEngine().rollup(["Date Time", "T1(5)", "A1(5)"], readings)

    for stats in buckets["2025-08-05"].columns.values():
        assert stats.min <= stats.avg <= stats.max


def test_last_follows_latest_timestamp_not_insertion_order() -> None:
    readings = [
        _reading("2025-08-05T12:00:00", T1_5=5.0),
        _reading("2025-08-05T06:00:00", T1_5=9.0),
    ]

    stats = RollupEngine().rollup(["Date Time", "T1(5)"], readings)["2025-08-05"].columns["T1(5)"]

    assert stats.last == 5.0
    assert stats.last_at == datetime(2025, 8, 5, 12, 0)


def test_same_instant_duplicates_refresh_last_but_not_extremes() -> None:
    readings = [
        _reading("2025-08-05T12:00:00", T1_5=7.0),
        _reading("2025-08-05T09:00:00", T1_5=7.0),
        _reading("2025-08-05T12:00:00", T1_5=8.0),
    ]

    stats = RollupEngine().rollup(["Date Time", "T1(5)"], readings)["2025-08-05"].columns["T1(5)"]

    assert stats.last == 8.0
    # First assignment wins ties on the minimum.
    assert stats.min == 7.0
    assert stats.min_at == datetime(2025, 8, 5, 12, 0)


def test_missing_values_are_skipped_per_column() -> None:
    parsed = parse_csv(
        "Date Time,T1(5),A1(5)\n"
        "2025-08-05 08:00:00,20.0,\n"
        "2025-08-05 09:00:00,nan,31.0\n"
    )

    bucket = RollupEngine().rollup(parsed.headers, parsed.readings)["2025-08-05"]

    assert bucket.count == 2
    assert bucket.columns["T1(5)"].samples == 1
    assert bucket.columns["A1(5)"].samples == 1
    assert bucket.columns["A1(5)"].avg == 31.0


def test_predicate_limits_columns() -> None:
    readings = [_reading("2025-08-05T08:00:00", T1_5=20.0, A1_5=30.0)]
    engine = RollupEngine(kind_predicate([ColumnKind.moisture]))

    bucket = engine.rollup(["Date Time", "T1(5)", "A1(5)"], readings)["2025-08-05"]

    assert list(bucket.columns) == ["A1(5)"]


def test_monthly_period_groups_by_month() -> None:
    readings = [
        _reading("2025-07-31T23:00:00", T1_5=10.0),
        _reading("2025-08-01T00:00:00", T1_5=12.0),
        _reading("2025-08-20T00:00:00", T1_5=14.0),
    ]

    buckets = RollupEngine(period="month").rollup(["Date Time", "T1(5)"], readings)

    assert sorted(buckets) == ["2025-07", "2025-08"]
    assert buckets["2025-08"].count == 2
    assert buckets["2025-08"].columns["T1(5)"].avg == 13.0


def test_unknown_period_is_rejected() -> None:
    with pytest.raises(ValueError):
        RollupEngine(period="week")


def test_merge_of_disjoint_months_is_a_union() -> None:
    engine = RollupEngine()
    headers = ["Date Time", "T1(5)"]
    july = engine.rollup(headers, [_reading("2025-07-30T08:00:00", T1_5=1.0), _reading("2025-07-31T08:00:00", T1_5=2.0)])
    august = engine.rollup(headers, [_reading("2025-08-01T08:00:00", T1_5=3.0)])

    merged = merge_buckets(july, august)

    assert sorted(merged) == sorted(set(july) | set(august))
    assert len(merged) == len(july) + len(august)


@pytest.mark.parametrize("value", ["2025-08-05", "20250805", "2025/08/05", "2025-08-05T10:00:00"])
def test_normalize_day_key_variants_compare_equal(value: str) -> None:
    assert normalize_day_key(value) == "20250805"


def _daily(*days: str):
    engine = RollupEngine()
    readings = [_reading(f"{day}T12:00:00", T1_5=1.0) for day in days]
    return engine.rollup(["Date Time", "T1(5)"], readings)


def test_clip_keeps_inclusive_range_across_key_formats() -> None:
    buckets = _daily("2025-08-03", "2025-08-04", "2025-08-05", "2025-08-06")

    clipped = clip_buckets(buckets, "2025/08/04", "20250805")

    assert sorted(clipped) == ["2025-08-04", "2025-08-05"]


def test_clip_is_idempotent() -> None:
    buckets = _daily("2025-08-03", "2025-08-04", "2025-08-05")

    once = clip_buckets(buckets, "20250804", "2025-08-09")
    twice = clip_buckets(once, "20250804", "2025-08-09")

    assert twice == once


def test_clip_without_bounds_falls_back_to_known_days() -> None:
    buckets = _daily("2025-08-03", "2025-08-04")

    assert clip_buckets(buckets) == buckets
    assert sorted(clip_buckets(buckets, start_day="20250804")) == ["2025-08-04"]


def test_clip_month_keys_by_prefix() -> None:
    engine = RollupEngine(period="month")
    buckets = engine.rollup(
        ["Date Time", "T1(5)"],
        [_reading("2025-06-10T00:00:00", T1_5=1.0), _reading("2025-08-10T00:00:00", T1_5=1.0)],
    )

    assert sorted(clip_buckets(buckets, "2025-07-15", "2025-08-31")) == ["2025-08"]


def test_bucket_serialization_converts_temperature_only() -> None:
    readings = [_reading("2025-08-05T08:00:00", T1_5=20.0, A1_5=30.0)]
    bucket = RollupEngine().rollup(["Date Time", "T1(5)", "A1(5)"], readings)["2025-08-05"]

    payload = bucket_to_dict(bucket, unit="F")

    assert payload["columns"]["T1(5)"]["avg"] == 68.0
    assert payload["columns"]["A1(5)"]["avg"] == 30.0
    assert payload["columns"]["T1(5)"]["min_at"] == "2025-08-05T08:00:00"


def test_latest_reading_filters_columns() -> None:
    readings = [
        Reading(datetime(2025, 8, 5, 8), {"T1(5)": 20.0, "Note": "x"}),
        Reading(datetime(2025, 8, 5, 9), {"T1(5)": 21.0, "Note": "y"}),
    ]

    latest = latest_reading(readings)

    assert latest is not None
    assert latest.timestamp == datetime(2025, 8, 5, 9)
    assert latest.values == {"T1(5)": 21.0}
    assert latest_reading([]) is None
