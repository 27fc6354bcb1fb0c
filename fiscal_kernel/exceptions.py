"""
Typed Exception Hierarchy for the Fiscal Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from FiscalKernelError:

    FiscalKernelError (base)
    |
    +-- NotFoundError
    |   +-- CorrectionEventNotFoundError
    |   +-- EmissionNotFoundError
    |   +-- CounterpartyNotFoundError
    |
    +-- CorrectionValidationError
    |
    +-- PreconditionError
    |   +-- EmissionNotAuthorizedError
    |   +-- MissingProtocolError
    |   +-- IssuerTaxIdUnresolvedError
    |
    +-- AuthorityError
    |   +-- TransportError
    |   +-- AuthorityRejectionError
    |   +-- UnsupportedJurisdictionError
    |   +-- ResponseParseError
    |
    +-- CertificateError
    |   +-- CertificateNotConfiguredError
    |   +-- CertificateInvalidError
    |
    +-- PersistenceError
    +-- ImmutabilityViolationError
    +-- InvalidEventTransitionError
    |
    +-- JobError
        +-- InvalidJobPayloadError
        +-- JobHandlerNotRegisteredError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-------------------------------------------
Not found       | CORRECTION_EVENT_NOT_FOUND    | Event id unknown for the tenant
                | EMISSION_NOT_FOUND            | Parent emission unknown for the tenant
                | COUNTERPARTY_NOT_FOUND        | Counterparty id unknown
----------------|-------------------------------|-------------------------------------------
Validation      | CORRECTION_VALIDATION_FAILED  | Text or sequence rule violated
----------------|-------------------------------|-------------------------------------------
Precondition    | EMISSION_NOT_AUTHORIZED       | Parent emission is not authorized
                | MISSING_PROTOCOL              | Authorization protocol unrecoverable
                | ISSUER_TAX_ID_UNRESOLVED      | No valid issuer tax id for the tenant
----------------|-------------------------------|-------------------------------------------
Authority       | TRANSPORT_ERROR               | Connection failure / timeout / HTTP 5xx
                | AUTHORITY_REJECTION           | Well-formed negative response
                | UNSUPPORTED_JURISDICTION      | No endpoint for the jurisdiction
                | RESPONSE_PARSE_ERROR          | Response body is not usable XML
----------------|-------------------------------|-------------------------------------------
Certificate     | CERTIFICATE_NOT_CONFIGURED    | Tenant has no certificate settings
                | CERTIFICATE_INVALID           | Unreadable, keyless or expired certificate
----------------|-------------------------------|-------------------------------------------
Storage         | PERSISTENCE_ERROR             | Write to the relational store failed
                | IMMUTABILITY_VIOLATION        | Modifying a terminal / protected record
                | INVALID_EVENT_TRANSITION      | Status change not in VALID_TRANSITIONS
----------------|-------------------------------|-------------------------------------------
Jobs            | INVALID_JOB_PAYLOAD           | Job payload lacks required ids
                | JOB_HANDLER_NOT_REGISTERED    | No handler for the job type

===============================================================================
HANDLING PATTERNS
===============================================================================

1. A rejection is a business outcome, not a fault:

    try:
        worker.process(event_id, company_id)
    except AuthorityRejectionError as e:
        notify_user(f"correction letter rejected: {e.result_message}")
    except FiscalKernelError as e:
        log.error("correction_failed", extra={"code": e.code})

2. Every terminal error has already been written to the owning record
   before it is raised, so a job queue may retry, discard or crash safely.
"""


class FiscalKernelError(Exception):
    """
    Base exception for all fiscal kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "FISCAL_KERNEL_ERROR"


# Not found


class NotFoundError(FiscalKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class CorrectionEventNotFoundError(NotFoundError):
    """Correction event not found for the tenant."""

    code: str = "CORRECTION_EVENT_NOT_FOUND"

    def __init__(self, correction_event_id: str, company_id: str | None = None):
        self.correction_event_id = correction_event_id
        self.company_id = company_id
        super().__init__(f"Correction event not found: {correction_event_id}")


class EmissionNotFoundError(NotFoundError):
    """Fiscal emission not found for the tenant."""

    code: str = "EMISSION_NOT_FOUND"

    def __init__(self, emission_id: str, company_id: str | None = None):
        self.emission_id = emission_id
        self.company_id = company_id
        super().__init__(f"Fiscal emission not found: {emission_id}")


class CounterpartyNotFoundError(NotFoundError):
    """Counterparty not found."""

    code: str = "COUNTERPARTY_NOT_FOUND"

    def __init__(self, counterparty_id: str):
        self.counterparty_id = counterparty_id
        super().__init__(f"Counterparty not found: {counterparty_id}")


# Validation


class CorrectionValidationError(FiscalKernelError):
    """Correction text or sequence violates a rule."""

    code: str = "CORRECTION_VALIDATION_FAILED"

    def __init__(self, violation_code: str, message: str):
        self.violation_code = violation_code
        super().__init__(message)


# Preconditions


class PreconditionError(FiscalKernelError):
    """Base exception for unmet preconditions on the parent document."""

    code: str = "PRECONDITION_FAILED"


class EmissionNotAuthorizedError(PreconditionError):
    """Only authorized documents accept amendments."""

    code: str = "EMISSION_NOT_AUTHORIZED"

    def __init__(self, emission_id: str, status: str):
        self.emission_id = emission_id
        self.status = status
        super().__init__(
            f"Only authorized documents accept amendments "
            f"(emission {emission_id} is {status})"
        )


class MissingProtocolError(PreconditionError):
    """The authorization protocol of the parent document is unknown."""

    code: str = "MISSING_PROTOCOL"

    def __init__(self, emission_id: str):
        self.emission_id = emission_id
        super().__init__(
            f"Missing authorization protocol for emission {emission_id}; "
            f"correction event not transmitted"
        )


class IssuerTaxIdUnresolvedError(PreconditionError):
    """No valid issuer tax id could be determined."""

    code: str = "ISSUER_TAX_ID_UNRESOLVED"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Could not resolve a valid issuer tax id for company {company_id}")


# Authority


class AuthorityError(FiscalKernelError):
    """Base exception for failures talking to the tax authority."""

    code: str = "AUTHORITY_ERROR"


class TransportError(AuthorityError):
    """Connection failure, timeout or server error after the retry budget."""

    code: str = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        url: str | None = None,
        attempts: int | None = None,
        request_xml: str | None = None,
    ):
        self.url = url
        self.attempts = attempts
        # Signed payload, when the failure happened during a submission
        self.request_xml = request_xml
        super().__init__(message)


class AuthorityRejectionError(AuthorityError):
    """The authority answered with a well-formed negative response."""

    code: str = "AUTHORITY_REJECTION"

    def __init__(self, result_code: str | None, result_message: str | None):
        self.result_code = result_code
        self.result_message = result_message
        super().__init__(
            f"Authority rejected the request: {result_code} - {result_message}"
        )


class UnsupportedJurisdictionError(AuthorityError):
    """No endpoint is known for the jurisdiction."""

    code: str = "UNSUPPORTED_JURISDICTION"

    def __init__(self, jurisdiction: str | None, service: str | None = None):
        self.jurisdiction = jurisdiction
        self.service = service
        super().__init__(f"Unsupported jurisdiction: {jurisdiction}")


class ResponseParseError(AuthorityError):
    """The authority response could not be parsed."""

    code: str = "RESPONSE_PARSE_ERROR"

    def __init__(
        self,
        message: str,
        raw_xml: str | None = None,
        request_xml: str | None = None,
    ):
        self.raw_xml = raw_xml
        self.request_xml = request_xml
        super().__init__(message)


# Certificates


class CertificateError(FiscalKernelError):
    """Base exception for signing credential problems."""

    code: str = "CERTIFICATE_ERROR"


class CertificateNotConfiguredError(CertificateError):
    """Tenant has no certificate configured."""

    code: str = "CERTIFICATE_NOT_CONFIGURED"

    def __init__(self, company_id: str, reason: str):
        self.company_id = company_id
        self.reason = reason
        super().__init__(f"Certificate not configured for company {company_id}: {reason}")


class CertificateInvalidError(CertificateError):
    """Certificate cannot be used for signing."""

    code: str = "CERTIFICATE_INVALID"

    def __init__(self, company_id: str, reason: str):
        self.company_id = company_id
        self.reason = reason
        super().__init__(f"Invalid certificate for company {company_id}: {reason}")


# Storage


class PersistenceError(FiscalKernelError):
    """A write to the relational store failed."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, entity_type: str, entity_id: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(f"Failed to persist {entity_type} {entity_id} ({operation})")


class ImmutabilityViolationError(FiscalKernelError):
    """Attempt to modify a protected record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class InvalidEventTransitionError(FiscalKernelError):
    """Correction event status change not allowed."""

    code: str = "INVALID_EVENT_TRANSITION"

    def __init__(self, correction_event_id: str, from_status: str, to_status: str):
        self.correction_event_id = correction_event_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for correction event {correction_event_id}: "
            f"{from_status} -> {to_status}"
        )


# Jobs


class JobError(FiscalKernelError):
    """Base exception for job delivery errors."""

    code: str = "JOB_ERROR"


class InvalidJobPayloadError(JobError):
    """Job payload is missing required identifiers."""

    code: str = "INVALID_JOB_PAYLOAD"

    def __init__(self, job_type: str, missing: list[str]):
        self.job_type = job_type
        self.missing = missing
        super().__init__(
            f"Invalid payload for {job_type}: missing {', '.join(missing)}"
        )


class JobHandlerNotRegisteredError(JobError):
    """No handler registered for the job type."""

    code: str = "JOB_HANDLER_NOT_REGISTERED"

    def __init__(self, job_type: str, available: tuple[str, ...]):
        self.job_type = job_type
        self.available = available
        super().__init__(
            f"No handler registered for job type '{job_type}'. "
            f"Available: {list(available)}"
        )
