"""Clock abstraction so the current time can be injected."""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

from autoinvest.core.models import ensure_utc, utc_now


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        pass


class SystemClock(Clock):
    """Wall-clock time from the operating system."""

    def now(self) -> datetime:
        return utc_now()


class FixedClock(Clock):
    """Manually controlled clock for tests and simulations."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else utc_now()

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = ensure_utc(moment)

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now
