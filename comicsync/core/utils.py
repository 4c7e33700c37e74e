from datetime import datetime, timezone
from typing import Optional


def to_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalise a client timestamp to the naive-UTC form used in storage."""
    if dt is None:
        return None
    # naive values are taken to be UTC already
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def merge_maps(current: Optional[dict], incoming: Optional[dict]) -> dict:
    # JSON columns are not mutation-tracked: always hand back a new dict
    merged = dict(current or {})
    merged.update(incoming or {})
    return merged
