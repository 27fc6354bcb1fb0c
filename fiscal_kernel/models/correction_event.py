"""
Module: fiscal_kernel.models.correction_event
Responsibility: ORM persistence for correction events ("correction letters")
    attached to an authorized fiscal emission, including the verbatim
    request/response XML exchanged with the authority.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE (emission_id, sequence).
    - State transitions follow VALID_TRANSITIONS (``transition_to``).
    - Terminal records are immutable and no record is ever deleted
      (db/immutability.py).

Audit relevance:
    request_xml and response_xml are retained verbatim whatever the outcome.
    result_code / result_message carry the authority's verdict or, for
    failures, the internal reason.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fiscal_kernel.db.base import TimestampedBase, UUIDString


class CorrectionEventStatus(str, Enum):
    """
    Status for correction events.

    State machine:
        QUEUED -> PROCESSING | FAILED
        PROCESSING -> AUTHORIZED | REJECTED | FAILED
        AUTHORIZED, REJECTED, FAILED: terminal
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"
    FAILED = "failed"


VALID_TRANSITIONS: dict[CorrectionEventStatus, frozenset[CorrectionEventStatus]] = {
    CorrectionEventStatus.QUEUED: frozenset({
        CorrectionEventStatus.PROCESSING, CorrectionEventStatus.FAILED,
    }),
    CorrectionEventStatus.PROCESSING: frozenset({
        CorrectionEventStatus.AUTHORIZED,
        CorrectionEventStatus.REJECTED,
        CorrectionEventStatus.FAILED,
    }),
    CorrectionEventStatus.AUTHORIZED: frozenset(),
    CorrectionEventStatus.REJECTED: frozenset(),
    CorrectionEventStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES: frozenset[CorrectionEventStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Fields frozen once the event is terminal
AUTHORITY_FIELDS: tuple[str, ...] = (
    "status",
    "sequence",
    "correction_text",
    "result_code",
    "result_message",
    "protocol_number",
    "request_xml",
    "response_xml",
    "processed_at",
)


class CorrectionEvent(TimestampedBase):
    """
    A correction letter for one authorized fiscal emission.

    Guarantees:
        - ``transition_to`` only accepts moves listed in VALID_TRANSITIONS.
        - Once terminal, AUTHORITY_FIELDS never change.
    """

    __tablename__ = "correction_events"

    __table_args__ = (
        UniqueConstraint("emission_id", "sequence", name="uq_correction_event_sequence"),
        Index("idx_correction_event_company", "company_id"),
        Index("idx_correction_event_status", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    emission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_emissions.id"),
        nullable=False,
    )

    access_key: Mapped[str] = mapped_column(String(44), nullable=False)

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    correction_text: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CorrectionEventStatus.QUEUED.value,
    )

    result_code: Mapped[str | None] = mapped_column(String(40), nullable=True)

    result_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Receipt issued by the authority for the event itself
    protocol_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    request_xml: Mapped[str | None] = mapped_column(Text, nullable=True)

    response_xml: Mapped[str | None] = mapped_column(Text, nullable=True)

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def status_enum(self) -> CorrectionEventStatus:
        return CorrectionEventStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum in TERMINAL_STATUSES

    def can_transition_to(self, target: CorrectionEventStatus) -> bool:
        return target in VALID_TRANSITIONS[self.status_enum]

    def transition_to(self, target: CorrectionEventStatus) -> None:
        """Move to ``target`` or raise InvalidEventTransitionError."""
        from fiscal_kernel.exceptions import InvalidEventTransitionError

        if not self.can_transition_to(target):
            raise InvalidEventTransitionError(
                correction_event_id=str(self.id),
                from_status=self.status,
                to_status=target.value,
            )
        self.status = target.value

    def __repr__(self) -> str:
        return f"<CorrectionEvent {self.access_key}#{self.sequence} [{self.status}]>"
