"""Timestamp helpers. Unparseable or missing values come back as None."""

from typing import Optional

import pandas as pd


def parse_timestamp(value) -> Optional[pd.Timestamp]:
    """Parse an ISO timestamp as UTC. Naive values are taken to be UTC."""
    if value is None or value == "":
        return None
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts


def minutes_between(start, end) -> Optional[float]:
    """Positive minutes from start to end, None if either is missing or the span is <= 0."""
    ta = parse_timestamp(start)
    tb = parse_timestamp(end)
    if ta is None or tb is None:
        return None
    mins = (tb - ta).total_seconds() / 60.0
    return mins if mins > 0 else None


def time_to_minutes(value: Optional[str]) -> Optional[int]:
    """'HH:MM' or 'HH:MM:SS' to minutes after midnight."""
    if not value:
        return None
    parts = str(value).strip().split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        return None
    return hour * 60 + minute


def utc_to_local_minutes(value, timezone: str) -> Optional[int]:
    """Minutes after local midnight in ``timezone`` for a UTC timestamp."""
    ts = parse_timestamp(value)
    if ts is None:
        return None
    local = ts.tz_convert(timezone)
    return local.hour * 60 + local.minute
