"""Summary statistics over bounded recent-duration samples.

Samples hold only the newest N observations, so every figure derived here
describes recent behaviour, not the whole window.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from tally.errors import MalformedStoredValue
from tally.store import parse_float

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleStats:
    count: int = 0
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    p95: float = 0.0


def parse_samples(key: str, raw_values: Iterable[object]) -> list[float]:
    """Parse stored durations, dropping entries that are not numbers."""
    values: list[float] = []
    for raw_value in raw_values:
        try:
            values.append(parse_float(key, raw_value))
        except MalformedStoredValue:
            logger.warning("Ignoring malformed sample at %s: %r", key, raw_value)
    return values


def percentile(sorted_values: Sequence[float], fraction: float) -> float:
    """Nearest-rank percentile on an ascending sequence."""
    if not sorted_values:
        return 0.0
    index = min(math.floor(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


def summarize(values: Sequence[float]) -> SampleStats:
    if not values:
        return SampleStats()
    ordered = sorted(values)
    return SampleStats(
        count=len(ordered),
        avg=round(sum(ordered) / len(ordered), 2),
        min=round(ordered[0], 2),
        max=round(ordered[-1], 2),
        p95=round(percentile(ordered, 0.95), 2),
    )


def rate(part: int, whole: int) -> float:
    """Percentage of ``part`` in ``whole`` rounded to two decimals."""
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


__all__ = [
    "SampleStats",
    "parse_samples",
    "percentile",
    "rate",
    "summarize",
]
