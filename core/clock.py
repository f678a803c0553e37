"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Provides the injectable time source for the sync layer.

- "Today" for streaks, consistency windows and time series
- Timestamps for toasts, reminders and tracking rows
- Deterministic tests through MockClock

============================================================
DESIGN PRINCIPLES
============================================================
- Every component receives its clock explicitly
- Calendar dates are taken in the clock's timezone
- Backend timestamps are parsed leniently (None on failure)

============================================================
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Generator, Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the application clock."""

    @property
    @abstractmethod
    def tz(self) -> tzinfo:
        """Timezone used for calendar dates."""
        pass

    @abstractmethod
    def now(self) -> datetime:
        """Get current timezone-aware datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    def today(self) -> date:
        """Get current calendar date in the clock's timezone."""
        return self.now().astimezone(self.tz).date()

    def days_ago(self, days: int) -> date:
        """Calendar date `days` before today."""
        return self.today() - timedelta(days=days)

    def format_iso(self, dt: Optional[datetime] = None) -> str:
        """Format datetime as ISO 8601."""
        dt = dt or self.now()
        return dt.isoformat()


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """
    Production clock using actual system time.

    Calendar dates follow the configured timezone (UTC by default).
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        self._tz = tz or timezone.utc

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        """Get current datetime in the clock's timezone."""
        return datetime.now(self._tz)

    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests.
    """

    def __init__(
        self,
        initial_time: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
    ):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current time)
            tz: Calendar timezone (defaults to UTC)
        """
        self._tz = tz or timezone.utc
        self._time = self._aware(initial_time or datetime.now(self._tz))
        self._lock = threading.Lock()

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def _aware(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self._tz)
        return value

    def now(self) -> datetime:
        """Get current (mocked) datetime."""
        with self._lock:
            return self._time

    def timestamp(self) -> float:
        """Get current (mocked) timestamp."""
        with self._lock:
            return self._time.timestamp()

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            self._time = self._aware(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)

    @contextmanager
    def freeze(self, at_time: Optional[datetime] = None) -> Generator[None, None, None]:
        """
        Context manager pinning the clock, restoring it afterwards.

        Args:
            at_time: Time to freeze at (defaults to current)
        """
        with self._lock:
            original_time = self._time
            if at_time:
                self._time = self._aware(at_time)

        try:
            yield
        finally:
            with self._lock:
                self._time = original_time


# ============================================================
# TIMESTAMP UTILITIES
# ============================================================

def to_iso8601(dt: datetime) -> str:
    """Convert datetime to ISO 8601 string."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a backend timestamp.

    Accepts datetimes, dates and ISO 8601 strings (including a trailing
    "Z"). Returns None for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass

    # Date-only or over-precise fractional seconds
    try:
        return datetime.fromisoformat(text[:10])
    except ValueError:
        return None


def calendar_date(value: Any, tz: Optional[tzinfo] = None) -> Optional[date]:
    """
    Calendar date of a timestamp.

    Aware timestamps are converted to `tz` first; naive ones and plain
    dates are taken as-is.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value

    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    if tz is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return parsed.date()


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "to_iso8601",
    "parse_timestamp",
    "calendar_date",
]
