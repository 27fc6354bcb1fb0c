"""
Clock -- injectable time source.

Responsibility:
    Services that stamp records (processed_at, registration_checked_at) or
    compare ages (registry cache TTL) receive a Clock instead of calling
    ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain.  SystemClock is the one sanctioned I/O boundary for time.

Failure modes:
    None.  DeterministicClock never advances unless told to.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock returning the real UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``advance()`` accepts fractional seconds so backoff delays can be
          replayed exactly.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advanced = timedelta()

    def now(self) -> datetime:
        return (self._fixed_time + self._advanced).astimezone(timezone.utc)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advanced = timedelta()

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advanced += timedelta(seconds=seconds)

    @property
    def elapsed_seconds(self) -> float:
        """Total seconds advanced since construction or the last set_time()."""
        return self._advanced.total_seconds()
