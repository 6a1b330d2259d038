"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that ledger code never calls
    ``datetime.now()`` directly.  Every ledger entry's ``created_at`` (its
    position on the logical time axis) comes from an injected Clock unless
    the caller supplies one.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic replay or testing.
    """

    def now(self) -> datetime:
        """Get current system time in UTC."""
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``tick()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Initialize with optional fixed time.

        Args:
            fixed_time: If provided, clock starts at this time.
                       If None, uses a default epoch time.
        """
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        """Get the fixed/controlled time."""
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
