"""
Pure domain layer.

No ORM, no database, no network.  Time enters only through an injected
Clock and sleeping only through an injected Sleeper.
"""

from fiscal_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fiscal_kernel.domain.correction_rules import (
    CorrectionEventValidator,
    RuleCheck,
    RuleViolation,
    normalize_correction_text,
    validate_correction_text,
    validate_sequence,
)
from fiscal_kernel.domain.retry import (
    ClockSleeper,
    RetryPolicy,
    Sleeper,
    SystemSleeper,
    retry,
)

__all__ = [
    "Clock",
    "ClockSleeper",
    "CorrectionEventValidator",
    "DeterministicClock",
    "RetryPolicy",
    "RuleCheck",
    "RuleViolation",
    "Sleeper",
    "SystemClock",
    "SystemSleeper",
    "normalize_correction_text",
    "retry",
    "validate_correction_text",
    "validate_sequence",
]
