from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock returning naive UTC datetimes, the form stored in every DateTime column."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


_system_clock = SystemClock()


def get_clock() -> Clock:
    # FastAPI dependency; tests swap it through app.dependency_overrides
    return _system_clock
