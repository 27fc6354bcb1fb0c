"""
CorrectionEventWorker -- end-to-end lifecycle of one correction event.

Responsibility:
    Validates, signs, transmits and records one correction event against an
    already-authorized fiscal emission.

Architecture position:
    Kernel > Services.  Invoked by the job handler in fiscal_batch; uses the
    validator, ProtocolRecoveryResolver, OrganizationDirectory,
    CertificateStore and GovernmentSoapClient.

Steps (each a possible exit):
    1.  Load event and emission scoped to the tenant.
    2.  Normalize and validate text and sequence.
    3.  Require the emission to be authorized.
    4.  Resolve the emission's authorization protocol.
    5.  Resolve the issuer tax id (access key, then organization directory).
    6.  queued -> processing, persisting the normalized text.
    7.  Acquire signing credentials (scoped).
    8.  Submit through GovernmentSoapClient.
    9.  success -> authorized; negative answer -> rejected; fault -> failed.
    10. Persist request/response XML, code, message and timestamp.

Invariants enforced:
    - Every transition is committed before the worker moves on or raises.
    - No network call happens before steps 2-5 have passed.
    - A terminal event is returned untouched on redelivery.
    - An event left in ``processing`` by a crashed delivery is resumed.

Failure modes:
    - CorrectionEventNotFoundError / EmissionNotFoundError (step 1).
    - CorrectionValidationError (step 2).
    - EmissionNotAuthorizedError, MissingProtocolError,
      IssuerTaxIdUnresolvedError (steps 3-5).
    - AuthorityRejectionError after the event is stored as rejected.
    - Anything raised in steps 7-8 after the event is stored as failed.
    - PersistenceError when a commit fails.

Audit relevance:
    The failure reason is written to result_code / result_message before
    any exception leaves this class.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fiscal_authority.client import GovernmentSoapClient
from fiscal_authority.envelope import CorrectionEventRequest
from fiscal_authority.signing import EventSigner, XmlEventSigner
from fiscal_kernel.domain.access_key import issuer_tax_id_from_access_key
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.domain.correction_rules import CorrectionEventValidator
from fiscal_kernel.exceptions import (
    AuthorityRejectionError,
    CorrectionEventNotFoundError,
    CorrectionValidationError,
    EmissionNotAuthorizedError,
    EmissionNotFoundError,
    IssuerTaxIdUnresolvedError,
    MissingProtocolError,
    PersistenceError,
)
from fiscal_kernel.logging_config import LogContext, get_logger
from fiscal_kernel.models.correction_event import CorrectionEvent, CorrectionEventStatus
from fiscal_kernel.models.fiscal_emission import FiscalEmission
from fiscal_kernel.services.base import BaseService
from fiscal_kernel.services.certificate_store import CertificateStore
from fiscal_kernel.services.organization_directory import OrganizationDirectory
from fiscal_kernel.services.protocol_recovery import (
    ProtocolRecoveryResolver,
    resolve_authority_target,
)

logger = get_logger("services.correction_event_worker")

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


def user_message(event: CorrectionEvent) -> str:
    """Coarse, end-user facing outcome of a correction event."""
    status = event.status_enum
    if status is CorrectionEventStatus.AUTHORIZED:
        return f"Correction letter authorized (protocol {event.protocol_number})"
    if status is CorrectionEventStatus.REJECTED:
        return f"Correction letter rejected: {event.result_message}"
    if status is CorrectionEventStatus.FAILED:
        if event.result_code == MissingProtocolError.code:
            return "Missing protocol, contact support"
        if event.result_code in (CorrectionValidationError.code, EmissionNotAuthorizedError.code):
            return f"Correction letter not sent: {event.result_message}"
        return "Correction letter could not be sent, contact support"
    return "Correction letter is being processed"


class CorrectionEventWorker(BaseService[CorrectionEvent]):
    """
    Processes one correction event per ``process`` call.

    Contract:
        Owns its transaction boundaries: commits after every transition so
        the audit trail survives whatever the caller does with a raised
        exception.

    Non-goals:
        - Does NOT retry.  Transport retries live in GovernmentSoapClient;
          redelivery belongs to the job delivery system.
    """

    def __init__(
        self,
        session: Session,
        resolver: ProtocolRecoveryResolver,
        client: GovernmentSoapClient,
        certificate_store: CertificateStore,
        directory: OrganizationDirectory | None = None,
        validator: CorrectionEventValidator | None = None,
        signer: EventSigner | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self.resolver = resolver
        self.client = client
        self.certificate_store = certificate_store
        self.directory = directory or OrganizationDirectory(session)
        self.validator = validator or CorrectionEventValidator()
        self.signer = signer or XmlEventSigner()
        self._clock = clock or SystemClock()

    def process(self, correction_event_id: UUID, company_id: UUID) -> CorrectionEvent:
        with LogContext.bind(correction_event_id=correction_event_id, company_id=company_id):
            event = self.session.scalars(
                select(CorrectionEvent).where(
                    CorrectionEvent.id == correction_event_id,
                    CorrectionEvent.company_id == company_id,
                )
            ).first()
            if event is None:
                logger.warning("correction_event_not_found")
                raise CorrectionEventNotFoundError(str(correction_event_id), str(company_id))

            if event.is_terminal:
                logger.info("correction_event_already_terminal", extra={"status": event.status})
                return event

            if event.status_enum is CorrectionEventStatus.PROCESSING:
                logger.warning("correction_event_resumed")

            try:
                return self._run(event, company_id)
            except Exception as exc:
                self._record_failure(event, exc)
                raise

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run(self, event: CorrectionEvent, company_id: UUID) -> CorrectionEvent:
        emission = self.session.scalars(
            select(FiscalEmission).where(
                FiscalEmission.id == event.emission_id,
                FiscalEmission.company_id == company_id,
            )
        ).first()
        if emission is None:
            raise EmissionNotFoundError(str(event.emission_id), str(company_id))

        with LogContext.bind(emission_id=emission.id):
            text = self.validator.normalize(event.correction_text)
            check = self.validator.check(text, event.sequence, self._prior_max(event))
            if not check:
                raise CorrectionValidationError(check.violation.code, check.violation.message)

            if not emission.is_authorized:
                raise EmissionNotAuthorizedError(str(emission.id), emission.status)

            if not self.resolver.resolve_for(emission):
                raise MissingProtocolError(str(emission.id))

            issuer_tax_id = (
                issuer_tax_id_from_access_key(emission.access_key)
                or self.directory.find_issuer_tax_id(company_id)
            )
            if not issuer_tax_id:
                raise IssuerTaxIdUnresolvedError(str(company_id))

            if event.status_enum is CorrectionEventStatus.QUEUED:
                event.transition_to(CorrectionEventStatus.PROCESSING)
            event.correction_text = text
            self._persist(event, "processing", commit=True)
            logger.info("correction_event_processing", extra={"sequence": event.sequence})

            jurisdiction, environment = resolve_authority_target(self.session, emission)
            request = CorrectionEventRequest(
                access_key=emission.access_key,
                issuer_tax_id=issuer_tax_id,
                sequence=event.sequence,
                correction_text=text,
                jurisdiction=jurisdiction or "",
                environment=environment,
                event_time=self._clock.now(),
            )
            with self.certificate_store.acquire(company_id) as credentials:
                result = self.client.submit_correction_event(request, credentials, self.signer)

            event.request_xml = result.request_xml
            event.response_xml = result.response_xml
            event.result_code = result.result_code
            event.result_message = result.result_message
            event.processed_at = self._clock.now()

            if result.success:
                event.protocol_number = result.protocol_number
                event.transition_to(CorrectionEventStatus.AUTHORIZED)
                self._persist(event, "authorized", commit=True)
                logger.info(
                    "correction_event_authorized",
                    extra={"result_code": event.result_code},
                )
                return event

            event.transition_to(CorrectionEventStatus.REJECTED)
            self._persist(event, "rejected", commit=True)
            logger.warning(
                "correction_event_rejected",
                extra={"result_code": event.result_code, "result_message": event.result_message},
            )
            raise AuthorityRejectionError(event.result_code, event.result_message)

    def _prior_max(self, event: CorrectionEvent) -> int | None:
        """Highest sequence among the emission's other authorized events."""
        return self.session.scalar(
            select(func.max(CorrectionEvent.sequence)).where(
                CorrectionEvent.emission_id == event.emission_id,
                CorrectionEvent.id != event.id,
                CorrectionEvent.status == CorrectionEventStatus.AUTHORIZED.value,
            )
        )

    def _record_failure(self, event: CorrectionEvent, exc: Exception) -> None:
        """Store ``exc`` on the event as ``failed`` unless it is already terminal."""
        try:
            if event.is_terminal:
                return
            event.transition_to(CorrectionEventStatus.FAILED)
            event.result_code = getattr(exc, "code", INTERNAL_ERROR_CODE)
            event.result_message = str(exc)
            event.processed_at = self._clock.now()
            request_xml = getattr(exc, "request_xml", None)
            response_xml = getattr(exc, "raw_xml", None)
            if request_xml:
                event.request_xml = request_xml
            if response_xml:
                event.response_xml = response_xml
            self._persist(event, "failed", commit=True)
        except PersistenceError:
            logger.error("correction_event_failure_not_recorded", exc_info=True)
            return
        logger.error(
            "correction_event_failed",
            extra={"result_code": event.result_code, "error": str(exc)},
        )
