"""Resolution of tool arguments and chat phrases into telemetry time windows."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Iterable, List, Mapping, Optional, Tuple

STAMP_FORMAT = "%Y%m%d%H%M%S"
DAY_FORMAT = "%Y%m%d"

_NON_DIGITS = re.compile(r"\D")

_START_KEYS = ("start", "start_time", "startTime", "from")
_START_DAY_KEYS = ("start_day", "startDay", "start_date", "startDate")
_END_KEYS = ("end", "end_time", "endTime", "to")
_END_DAY_KEYS = ("end_day", "endDay", "end_date", "endDate")
_PHRASE_KEYS = ("when", "range", "period", "phrase")

_UNIT_DELTAS = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

_WEEKDAYS = {name.lower(): index for index, name in enumerate(calendar.day_name)}
_MONTHS = {
    **{name.lower(): index for index, name in enumerate(calendar.month_name) if name},
    **{name.lower(): index for index, name in enumerate(calendar.month_abbr) if name},
}

_NOW_RE = re.compile(r"\b(?:right now|now|current|currently|latest)\b")
_TODAY_RE = re.compile(r"\btoday\b")
_YESTERDAY_RE = re.compile(r"\byesterday\b")
_TRAILING_N_RE = re.compile(r"\b(?:past|last)\s+(\d{1,3})\s*(hour|day|week|month)s?\b")
_TRAILING_ONE_RE = re.compile(r"\b(?:past|last)\s+(hour|day|week|month)\b")
_THIS_WEEK_RE = re.compile(r"\bthis\s+week\b")
_THIS_MONTH_RE = re.compile(r"\bthis\s+month\b")
_SINCE_MONTH_RE = re.compile(r"\bsince\s+([a-z]+)\b")
_WEEKDAY_RE = re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")\b")


@dataclass(frozen=True)
class TimeWindow:
    """An inclusive ``[start, end]`` span in probe-local time."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            start, end = self.end, self.start
            object.__setattr__(self, "start", start)
            object.__setattr__(self, "end", end)

    @property
    def start_stamp(self) -> str:
        return self.start.strftime(STAMP_FORMAT)

    @property
    def end_stamp(self) -> str:
        return self.end.strftime(STAMP_FORMAT)

    @property
    def start_day(self) -> str:
        return self.start.strftime(DAY_FORMAT)

    @property
    def end_day(self) -> str:
        return self.end.strftime(DAY_FORMAT)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def months(self) -> List["TimeWindow"]:
        """Split into calendar-month chunks clipped to this window."""
        chunks: List[TimeWindow] = []
        cursor = self.start
        while cursor <= self.end:
            next_month = _first_of_next_month(cursor)
            chunk_end = min(self.end, next_month - timedelta(seconds=1))
            chunks.append(TimeWindow(cursor, chunk_end))
            cursor = next_month
        return chunks

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start_stamp, "end": self.end_stamp}


@dataclass(frozen=True)
class ResolvedWindow:
    window: TimeWindow
    source: str
    mode_hint: Optional[str] = None


def _first_of_next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1)
    return datetime(moment.year, moment.month + 1, 1)


def _start_of_day(day: datetime) -> datetime:
    return datetime.combine(day.date(), time.min)


def _end_of_day(day: datetime) -> datetime:
    return datetime.combine(day.date(), time(23, 59, 59))


def _full_day(day: datetime) -> TimeWindow:
    return TimeWindow(_start_of_day(day), _end_of_day(day))


def _digits(value: object) -> str:
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def _first_stamp(args: Mapping[str, object], keys: Iterable[str]) -> Optional[datetime]:
    for key in keys:
        digits = _digits(args.get(key))
        if len(digits) >= 14:
            try:
                return datetime.strptime(digits[:14], STAMP_FORMAT)
            except ValueError:
                continue
    return None


def _first_day(args: Mapping[str, object], keys: Iterable[str]) -> Optional[datetime]:
    for key in keys:
        digits = _digits(args.get(key))
        if len(digits) == 8:
            try:
                return datetime.strptime(digits, DAY_FORMAT)
            except ValueError:
                continue
    return None


class WindowResolver:
    """Turn tool arguments and free text into a concrete ``TimeWindow``.

    Precedence for each bound: a 14-digit timestamp, then an 8-digit day
    (expanded to 00:00:00 or 23:59:59), then a recognised phrase, then
    the default lookback ending now. Text that matches nothing falls back
    to the default rather than failing.
    """

    def __init__(
        self,
        now: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
        default_lookback: timedelta = timedelta(days=7),
        latest_lookback: timedelta = timedelta(hours=6),
    ) -> None:
        self._now = now or (lambda: datetime.now(tz).replace(tzinfo=None, microsecond=0))
        self.default_lookback = default_lookback
        self.latest_lookback = latest_lookback

    def now(self) -> datetime:
        return self._now()

    def resolve(
        self,
        args: Optional[Mapping[str, object]] = None,
        text: Optional[str] = None,
    ) -> ResolvedWindow:
        args = args or {}
        now = self.now()

        start = _first_stamp(args, _START_KEYS + _START_DAY_KEYS)
        end = _first_stamp(args, _END_KEYS + _END_DAY_KEYS)
        if start is None:
            day = _first_day(args, _START_DAY_KEYS + _START_KEYS)
            start = _start_of_day(day) if day else None
        if end is None:
            day = _first_day(args, _END_DAY_KEYS + _END_KEYS)
            end = _end_of_day(day) if day else None

        if start is not None and end is not None:
            return ResolvedWindow(TimeWindow(start, end), source="explicit")

        phrase = None
        for key in _PHRASE_KEYS:
            value = args.get(key)
            if isinstance(value, str) and value.strip():
                phrase = self.parse_phrase(value, now)
                if phrase:
                    break
        if phrase is None and text:
            phrase = self.parse_phrase(text, now)

        if phrase is not None:
            window, hint = phrase
            source = "phrase"
        else:
            window, hint = TimeWindow(now - self.default_lookback, now), None
            source = "default"

        if start is None and end is None:
            return ResolvedWindow(window, source=source, mode_hint=hint)

        if end is not None:
            fallback_start = window.start if window.start <= end else end - self.default_lookback
            return ResolvedWindow(TimeWindow(fallback_start, end), source="explicit")
        return ResolvedWindow(
            TimeWindow(start, window.end if window.end >= start else now),
            source="explicit",
        )

    def parse_phrase(
        self, text: str, now: Optional[datetime] = None
    ) -> Optional[Tuple[TimeWindow, Optional[str]]]:
        """Match ``text`` against the supported phrase grammar."""
        now = now or self.now()
        lowered = text.lower()

        # An explicit count outranks "current" or "latest" in the same sentence.
        match = _TRAILING_N_RE.search(lowered)
        if match:
            count = max(int(match.group(1)), 1)
            return TimeWindow(now - _UNIT_DELTAS[match.group(2)] * count, now), None
        if _NOW_RE.search(lowered):
            return TimeWindow(now - self.latest_lookback, now), "latest"
        if _TODAY_RE.search(lowered):
            return TimeWindow(_start_of_day(now), now), None
        if _YESTERDAY_RE.search(lowered):
            return _full_day(now - timedelta(days=1)), None

        match = _TRAILING_ONE_RE.search(lowered)
        if match:
            return TimeWindow(now - _UNIT_DELTAS[match.group(1)], now), None

        if _THIS_WEEK_RE.search(lowered):
            monday = now - timedelta(days=now.weekday())
            return TimeWindow(_start_of_day(monday), now), None
        if _THIS_MONTH_RE.search(lowered):
            return TimeWindow(datetime(now.year, now.month, 1), now), None

        match = _SINCE_MONTH_RE.search(lowered)
        if match and match.group(1) in _MONTHS:
            month = _MONTHS[match.group(1)]
            year = now.year if month <= now.month else now.year - 1
            return TimeWindow(datetime(year, month, 1), now), None

        match = _WEEKDAY_RE.search(lowered)
        if match:
            target = _WEEKDAYS[match.group(1)]
            days_back = (now.weekday() - target) % 7 or 7
            return _full_day(now - timedelta(days=days_back)), None

        return None
