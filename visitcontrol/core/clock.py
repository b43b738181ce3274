"""Clock collaborator.

Everything in the access-control core asks a ``Clock`` for "now" and "today"
instead of reading the system time, so tests and the CLI can pin the moment a
check-in happens.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from zoneinfo import ZoneInfo


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current local time as a naive datetime."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall clock in the facility's local time, returned as naive datetimes."""

    def __init__(self, tz_name: str | None = None) -> None:
        self.tz = ZoneInfo(tz_name) if tz_name else None

    def now(self) -> datetime:
        if self.tz is None:
            return datetime.now()
        return datetime.now(self.tz).replace(tzinfo=None)
