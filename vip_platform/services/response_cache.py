"""
In-memory cache for the last successful upstream response.
The clock is injectable so staleness can be controlled in tests.
"""

from typing import Any, Callable, Optional
from datetime import datetime, timedelta


class ResponseCache:
    """Single-slot TTL cache that keeps the last value even after it expires."""

    def __init__(self, ttl: timedelta = timedelta(minutes=15), clock: Optional[Callable[[], datetime]] = None):
        self.ttl = ttl
        self._clock = clock or datetime.utcnow
        self._value: Any = None
        self._stored_at: Optional[datetime] = None

    @property
    def last_fetch_time(self) -> Optional[datetime]:
        return self._stored_at

    def has_value(self) -> bool:
        return self._stored_at is not None

    def age(self) -> Optional[timedelta]:
        if self._stored_at is None:
            return None
        return self._clock() - self._stored_at

    def get_fresh(self) -> Optional[Any]:
        """Return the cached value only if it is younger than the TTL."""
        age = self.age()
        if age is None or age >= self.ttl:
            return None
        return self._value

    def get_stale(self) -> Optional[Any]:
        """Return the cached value regardless of age."""
        return self._value if self._stored_at is not None else None

    def set(self, value: Any):
        self._value = value
        self._stored_at = self._clock()

    def clear(self):
        self._value = None
        self._stored_at = None
