"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Single source of "now" for cache stamping and freshness.

Cache entries are stamped with the injected clock and freshness
is judged against the same clock, so tests move time forward
with MockClock.advance() instead of sleeping.

All datetimes are timezone-aware UTC.

============================================================
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


def _as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class ClockProtocol(ABC):
    """Abstract time source."""

    @abstractmethod
    def now(self) -> datetime:
        """Current UTC datetime."""


class SystemClock(ClockProtocol):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """
    Manually driven clock for tests.

    Time stands still until set_time() or advance() is called.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._current = _as_utc(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set_time(self, new_time: datetime) -> None:
        with self._lock:
            self._current = _as_utc(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Move time forward.

        Args:
            seconds: Seconds to advance
            **kwargs: Extra timedelta units (minutes=, hours=, days=)
        """
        step = timedelta(seconds=seconds, **kwargs)
        with self._lock:
            self._current += step


def to_iso8601(dt: datetime) -> str:
    """Format as ISO 8601 with offset (naive input treated as UTC)."""
    return _as_utc(dt).isoformat()


def from_iso8601(iso_string: str) -> datetime:
    """Parse ISO 8601, accepting a trailing 'Z' as used by most APIs."""
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"
    return _as_utc(datetime.fromisoformat(iso_string))


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "to_iso8601",
    "from_iso8601",
]
