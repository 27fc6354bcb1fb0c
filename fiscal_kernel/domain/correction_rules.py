"""
CorrectionEventValidator -- pure validation of correction text and sequence.

Responsibility:
    Normalizes correction text and checks the authority's length bounds and
    the per-emission sequence rules before any correction event leaves
    ``queued``.

Architecture position:
    Kernel > Domain.  Pure: no ORM, no clock, no I/O.

Invariants enforced:
    - normalize_correction_text is idempotent.
    - Text length after normalization is within [min_length, max_length].
    - Sequence is a positive integer strictly greater than the prior
      accepted maximum for the emission and not above max_sequence.

Failure modes:
    None raised.  Violations are returned as RuleCheck data; callers decide
    whether to raise CorrectionValidationError.
"""

import re
from dataclasses import dataclass

MIN_TEXT_LENGTH = 15
MAX_TEXT_LENGTH = 1000
# Authority limit on correction events per document
MAX_SEQUENCE = 20

REQUIRED = "REQUIRED"
LENGTH = "LENGTH"
SEQUENCE = "SEQUENCE"
SEQUENCE_LIMIT = "SEQUENCE_LIMIT"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class RuleViolation:
    """A single rule violation with a machine-readable code."""

    code: str
    message: str


@dataclass(frozen=True)
class RuleCheck:
    """
    Outcome of a rule check.

    Guarantees:
        - ok is True exactly when violation is None.
        - bool(check) == check.ok
    """

    ok: bool
    violation: RuleViolation | None = None

    @classmethod
    def passed(cls) -> "RuleCheck":
        return cls(ok=True)

    @classmethod
    def failed(cls, code: str, message: str) -> "RuleCheck":
        return cls(ok=False, violation=RuleViolation(code=code, message=message))

    def __bool__(self) -> bool:
        return self.ok


def normalize_correction_text(text: str | None) -> str:
    """Collapse line breaks and whitespace runs to single spaces and trim."""
    if text is None:
        return ""
    return _WHITESPACE.sub(" ", str(text)).strip()


def validate_correction_text(
    text: str | None,
    min_length: int = MIN_TEXT_LENGTH,
    max_length: int = MAX_TEXT_LENGTH,
) -> RuleCheck:
    """Check the normalized text against the length bounds."""
    normalized = normalize_correction_text(text)
    if not normalized:
        return RuleCheck.failed(REQUIRED, "Correction text is required")
    if not min_length <= len(normalized) <= max_length:
        return RuleCheck.failed(
            LENGTH,
            f"Correction text must have between {min_length} and {max_length} "
            f"characters (got {len(normalized)})",
        )
    return RuleCheck.passed()


def validate_sequence(
    sequence: object,
    prior_max: int | None,
    max_sequence: int = MAX_SEQUENCE,
) -> RuleCheck:
    """
    Check a correction sequence number.

    Args:
        sequence: Candidate sequence number.
        prior_max: Highest previously accepted sequence for the emission,
            or None when there is none.
        max_sequence: Highest sequence the authority accepts.
    """
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        return RuleCheck.failed(
            SEQUENCE, f"Sequence must be a positive integer (got {sequence!r})"
        )
    if prior_max is not None and sequence <= prior_max:
        return RuleCheck.failed(
            SEQUENCE,
            f"Sequence {sequence} must be greater than the last accepted "
            f"sequence {prior_max}",
        )
    if sequence > max_sequence:
        return RuleCheck.failed(
            SEQUENCE_LIMIT,
            f"Sequence {sequence} exceeds the limit of {max_sequence} "
            f"correction events per document",
        )
    return RuleCheck.passed()


class CorrectionEventValidator:
    """Bundles the correction rules with configured bounds."""

    def __init__(
        self,
        min_length: int = MIN_TEXT_LENGTH,
        max_length: int = MAX_TEXT_LENGTH,
        max_sequence: int = MAX_SEQUENCE,
    ):
        self.min_length = min_length
        self.max_length = max_length
        self.max_sequence = max_sequence

    @classmethod
    def from_config(cls, config) -> "CorrectionEventValidator":
        """Build from a fiscal_config CorrectionConfig."""
        return cls(
            min_length=config.min_text_length,
            max_length=config.max_text_length,
            max_sequence=config.max_sequence,
        )

    def normalize(self, text: str | None) -> str:
        return normalize_correction_text(text)

    def validate_text(self, text: str | None) -> RuleCheck:
        return validate_correction_text(text, self.min_length, self.max_length)

    def validate_sequence(self, sequence: object, prior_max: int | None) -> RuleCheck:
        return validate_sequence(sequence, prior_max, self.max_sequence)

    def check(self, text: str | None, sequence: object, prior_max: int | None) -> RuleCheck:
        """Text rules first, then sequence rules; first violation wins."""
        text_check = self.validate_text(text)
        if not text_check:
            return text_check
        return self.validate_sequence(sequence, prior_max)
