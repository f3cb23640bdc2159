"""Ordered source chains for goal percentages."""

from __future__ import annotations

import math
from typing import Any, Callable, Optional, Sequence

from .models import PlatformStatus, ReportRecord, coerce_number

Lookup = Callable[[], Optional[float]]

DEFAULT_SOURCE = "default"


def sanitize_percentage(value: Any) -> float:
    """Non-numeric, non-finite and negative values collapse to 0. No upper clamp."""
    num = coerce_number(value)
    if num is None or not math.isfinite(num) or num < 0:
        return 0.0
    return round(num, 2)


def resolve_first(sources: Sequence[tuple[str, Lookup]]) -> tuple[float, str]:
    """Return (sanitized value, source name) for the first lookup that yields a value."""
    for name, lookup in sources:
        value = lookup()
        if value is not None:
            return sanitize_percentage(value), name
    return 0.0, DEFAULT_SOURCE


def challenge_source(status: Optional[PlatformStatus], challenge_ids: Sequence[str]) -> tuple[str, Lookup]:
    def lookup() -> Optional[float]:
        if status is None or not challenge_ids:
            return None
        return status.challenge_percentage(challenge_ids)

    return "challenge", lookup


def report_source(record: Optional[ReportRecord], metric: str) -> tuple[str, Lookup]:
    def lookup() -> Optional[float]:
        if record is None:
            return None
        return record.get(metric)

    return "report", lookup
