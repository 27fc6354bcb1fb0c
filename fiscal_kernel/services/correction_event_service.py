"""
CorrectionEventService -- user action that requests a correction letter.

Responsibility:
    Creates a correction event in ``queued`` for an authorized emission and
    hands ``{correction_event_id, company_id}`` to the job delivery system.

Architecture position:
    Kernel > Services.  The worker picks the job up later; nothing here
    talks to the authority.

Invariants enforced:
    - Text is normalized and validated before the event exists.
    - Sequence = highest existing sequence for the emission + 1, within the
      authority limit.
    - The event is committed before the job is enqueued, so a fast worker
      always finds it.

Failure modes:
    - EmissionNotFoundError, EmissionNotAuthorizedError,
      CorrectionValidationError: nothing is written.
    - Enqueue failure: the event is stored as ``failed`` and the original
      exception re-raised.
"""

from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.domain.correction_rules import CorrectionEventValidator
from fiscal_kernel.exceptions import (
    CorrectionValidationError,
    EmissionNotAuthorizedError,
    EmissionNotFoundError,
)
from fiscal_kernel.logging_config import LogContext, get_logger
from fiscal_kernel.models.correction_event import CorrectionEvent, CorrectionEventStatus
from fiscal_kernel.models.fiscal_emission import FiscalEmission
from fiscal_kernel.services.base import BaseService

logger = get_logger("services.correction_event")

CORRECTION_EVENT_JOB_TYPE = "fiscal.correction_event"
ENQUEUE_FAILED_CODE = "ENQUEUE_FAILED"


class JobQueue(Protocol):
    """At-least-once job delivery."""

    def enqueue(self, job_type: str, payload: dict[str, Any]) -> None: ...


class CorrectionEventService(BaseService[CorrectionEvent]):
    def __init__(
        self,
        session: Session,
        queue: JobQueue,
        validator: CorrectionEventValidator | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self.queue = queue
        self.validator = validator or CorrectionEventValidator()
        self._clock = clock or SystemClock()

    def next_sequence(self, emission_id: UUID) -> int:
        current = self.session.scalar(
            select(func.max(CorrectionEvent.sequence)).where(
                CorrectionEvent.emission_id == emission_id
            )
        )
        return (current or 0) + 1

    def request_correction(
        self,
        emission_id: UUID,
        company_id: UUID,
        text: str,
        actor_id: UUID | None = None,
    ) -> CorrectionEvent:
        with LogContext.bind(emission_id=emission_id, company_id=company_id):
            emission = self.session.scalars(
                select(FiscalEmission).where(
                    FiscalEmission.id == emission_id,
                    FiscalEmission.company_id == company_id,
                )
            ).first()
            if emission is None:
                raise EmissionNotFoundError(str(emission_id), str(company_id))

            normalized = self.validator.normalize(text)
            check = self.validator.validate_text(normalized)
            if not check:
                raise CorrectionValidationError(check.violation.code, check.violation.message)

            if not emission.is_authorized:
                raise EmissionNotAuthorizedError(str(emission.id), emission.status)

            sequence = self.next_sequence(emission.id)
            check = self.validator.validate_sequence(sequence, sequence - 1 or None)
            if not check:
                raise CorrectionValidationError(check.violation.code, check.violation.message)

            event = CorrectionEvent(
                company_id=company_id,
                emission_id=emission.id,
                access_key=emission.access_key,
                sequence=sequence,
                correction_text=normalized,
                status=CorrectionEventStatus.QUEUED.value,
                created_by=actor_id,
            )
            self._persist(event, "create", commit=True)
            logger.info(
                "correction_event_requested",
                extra={"correction_event_id": str(event.id), "sequence": sequence},
            )

            try:
                self.queue.enqueue(
                    CORRECTION_EVENT_JOB_TYPE,
                    {"correction_event_id": str(event.id), "company_id": str(company_id)},
                )
            except Exception as exc:
                event.transition_to(CorrectionEventStatus.FAILED)
                event.result_code = ENQUEUE_FAILED_CODE
                event.result_message = f"Failed to enqueue correction event: {exc}"
                event.processed_at = self._clock.now()
                self._persist(event, "enqueue_failed", commit=True)
                logger.error(
                    "correction_event_enqueue_failed",
                    extra={"correction_event_id": str(event.id), "error": str(exc)},
                )
                raise

            return event
