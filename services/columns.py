"""Header-based classification of probe CSV columns."""

from __future__ import annotations

import re
from typing import Callable, Iterable, Optional

from models.records import ColumnKind

ColumnPredicate = Callable[[str], bool]

_DEPTH_RE = re.compile(r"\(\s*([^)]*?)\s*\)")

# Ordered; the first matching pattern decides the kind.
_PATTERNS: tuple[tuple[ColumnKind, re.Pattern[str]], ...] = (
    (ColumnKind.temperature, re.compile(r"^T\d+\s*\(", re.IGNORECASE)),
    (ColumnKind.moisture, re.compile(r"^A\d+\s*\(", re.IGNORECASE)),
    (ColumnKind.battery, re.compile(r"batt|volt|vbat", re.IGNORECASE)),
    (ColumnKind.temperature, re.compile(r"temp", re.IGNORECASE)),
    (ColumnKind.moisture, re.compile(r"moist|\bvwc\b", re.IGNORECASE)),
)

_KIND_ALIASES: tuple[tuple[str, ColumnKind], ...] = (
    ("temp", ColumnKind.temperature),
    ("moist", ColumnKind.moisture),
    ("vwc", ColumnKind.moisture),
    ("soil", ColumnKind.moisture),
    ("batt", ColumnKind.battery),
    ("volt", ColumnKind.battery),
)


def classify_column(name: str) -> Optional[ColumnKind]:
    """Return the semantic kind of a column header, or ``None``."""
    candidate = (name or "").strip()
    if not candidate:
        return None
    for kind, pattern in _PATTERNS:
        if pattern.search(candidate):
            return kind
    return None


def column_depth(name: str) -> Optional[str]:
    match = _DEPTH_RE.search(name or "")
    if not match or not match.group(1):
        return None
    return match.group(1)


def parse_kinds(raw: object) -> frozenset[ColumnKind]:
    """Coerce a tool argument (string, list or ``None``) into column kinds.

    Unknown names are ignored, so loose guesses such as ``"temps, soil"``
    still resolve and an empty result selects every classified column.
    """
    if isinstance(raw, str):
        items: Iterable[object] = raw.split(",")
    elif isinstance(raw, (list, tuple, set, frozenset)):
        items = raw
    else:
        return frozenset()

    kinds: set[ColumnKind] = set()
    for item in items:
        text = str(item).strip().lower()
        if not text:
            continue
        for prefix, kind in _KIND_ALIASES:
            if text.startswith(prefix):
                kinds.add(kind)
                break
    return frozenset(kinds)


def kind_predicate(kinds: Optional[Iterable[ColumnKind]] = None) -> ColumnPredicate:
    """Build a column predicate selecting the given kinds (all when empty)."""
    wanted = frozenset(kinds or ())

    def predicate(name: str) -> bool:
        kind = classify_column(name)
        if kind is None:
            return False
        return not wanted or kind in wanted

    return predicate
