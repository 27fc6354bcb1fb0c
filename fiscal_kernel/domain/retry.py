"""
Retry executor with exponential backoff.

Responsibility:
    Runs an operation up to ``max_attempts`` times, sleeping
    ``base_delay * multiplier ** (attempt - 1)`` seconds between attempts,
    and retrying only on the exception types given in ``retry_on``.

Architecture position:
    Kernel > Domain.  Sleeping goes through an injected Sleeper so tests can
    replay elapsed time on a DeterministicClock without real delays.

Failure modes:
    - The last exception is re-raised unchanged once attempts are exhausted.
    - Exceptions not listed in ``retry_on`` propagate on the first attempt.
"""

import time
from dataclasses import dataclass
from typing import Callable, Protocol, TypeVar, runtime_checkable

from fiscal_kernel.domain.clock import DeterministicClock
from fiscal_kernel.logging_config import get_logger

logger = get_logger("domain.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.  Defaults give delays of 1s then 2s over 3 attempts."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.multiplier < 1:
            raise ValueError("base_delay must be >= 0 and multiplier >= 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.base_delay * (self.multiplier ** (attempt - 1))


@runtime_checkable
class Sleeper(Protocol):
    def sleep(self, seconds: float) -> None: ...


class SystemSleeper:
    """Blocks the calling thread."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class ClockSleeper:
    """Advances a DeterministicClock instead of blocking."""

    def __init__(self, clock: DeterministicClock):
        self.clock = clock
        self.delays: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


def retry(
    policy: RetryPolicy,
    operation: Callable[[], T],
    retry_on: tuple[type[BaseException], ...],
    sleeper: Sleeper | None = None,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` under ``policy``; see module docstring."""
    sleeper = sleeper or SystemSleeper()
    attempt = 1
    while True:
        try:
            return operation()
        except retry_on as exc:
            if attempt >= policy.max_attempts:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt,
                        "error": str(exc),
                    },
                )
                raise
            delay = policy.delay_for(attempt)
            logger.info(
                "retry_scheduled",
                extra={
                    "operation": operation_name,
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "error": str(exc),
                },
            )
            sleeper.sleep(delay)
            attempt += 1
