"""Deterministic window key derivation.

A window key names one calendar bucket of one counter dimension:

    {namespace}:{dimension}:{granularity}:{label}

    monitoring:requests:day:2026-10-18
    monitoring:requests:hour:2026-10-18T09
    monitoring:endpoint:errors:GET:/jobs:day:2026-10-18

Labels are always derived in UTC so every process agrees on the bucket.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

DAY_FORMAT = "%Y-%m-%d"
HOUR_FORMAT = "%Y-%m-%dT%H"


class Granularity(StrEnum):
    HOUR = "hour"
    DAY = "day"


def as_utc(at: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if at.tzinfo is None:
        return at.replace(tzinfo=UTC)
    return at.astimezone(UTC)


def bucket_label(at: datetime, granularity: Granularity) -> str:
    """Calendar bucket label for ``at`` at the given granularity."""
    at = as_utc(at)
    if granularity is Granularity.HOUR:
        return at.strftime(HOUR_FORMAT)
    return at.strftime(DAY_FORMAT)


def day_label(at: datetime) -> str:
    return bucket_label(at, Granularity.DAY)


def window_key(
    namespace: str,
    dimension: str,
    granularity: Granularity,
    at: datetime | str,
) -> str:
    """Build the key for ``dimension`` in the bucket containing ``at``.

    ``at`` may also be a precomputed label (e.g. a ``YYYY-MM-DD`` date string
    supplied by a dashboard query).
    """
    label = at if isinstance(at, str) else bucket_label(at, granularity)
    return f"{namespace}:{dimension}:{granularity.value}:{label}"
