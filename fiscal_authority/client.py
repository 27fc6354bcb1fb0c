"""
GovernmentSoapClient -- SOAP/XML client for the tax authority.

Responsibility:
    Resolves the jurisdiction endpoint, builds the envelope, POSTs it through
    a Transport under a RetryPolicy, and normalizes the XML answer into a
    result dataclass.

Architecture position:
    Authority adapter.  Imports kernel exceptions, logging and the retry
    executor; holds no state between calls.

Invariants enforced:
    - Unknown jurisdictions are rejected before any network attempt.
    - Only transport failures (connection, timeout, HTTP 5xx) are retried.
      A well-formed answer, positive or negative, is final on first receipt.

Failure modes:
    - query(): never raises for unsupported jurisdiction, transport
      exhaustion or parse failure; ``failure`` names what went wrong.
    - query_protocol(): UnsupportedJurisdictionError, TransportError after
      exhaustion.
    - submit_correction_event(): UnsupportedJurisdictionError,
      TransportError after exhaustion, ResponseParseError for unusable
      answers (including SOAP faults).  Both carry ``request_xml``.
"""

from dataclasses import dataclass

from fiscal_authority.endpoints import (
    EVENT_SUBMISSION,
    PROTOCOL_QUERY,
    REGISTRY_QUERY,
    SERVICES,
    resolve_endpoint,
)
from fiscal_authority.envelope import (
    CorrectionEventRequest,
    build_correction_event,
    build_event_submission,
    build_protocol_query,
    build_registry_query,
)
from fiscal_authority.parsing import (
    dig,
    find_protocol_number,
    first,
    parse_xml,
    soap_body,
    soap_fault_reason,
    text_of,
)
from fiscal_authority.signing import EventSigner, SigningCredentials, XmlEventSigner
from fiscal_authority.transport import HttpTransport, Transport
from fiscal_kernel.domain.access_key import is_valid_tax_id, mask_tax_id, only_digits
from fiscal_kernel.domain.retry import RetryPolicy, Sleeper, SystemSleeper, retry
from fiscal_kernel.exceptions import (
    ResponseParseError,
    TransportError,
    UnsupportedJurisdictionError,
)
from fiscal_kernel.logging_config import get_logger
from fiscal_kernel.models.fiscal_emission import Environment

logger = get_logger("authority.client")

DEFAULT_TIMEOUT_SECONDS = 5.0

REGISTRY_FOUND = "111"
EVENT_BATCH_PROCESSED = "128"
EVENT_REGISTERED = frozenset({"135", "136"})

# RegistryQueryResult.failure kinds
FAILURE_UNSUPPORTED_JURISDICTION = "unsupported_jurisdiction"
FAILURE_INVALID_TAX_ID = "invalid_tax_id"
FAILURE_TRANSPORT = "transport"
FAILURE_PARSE = "parse"
FAILURE_REJECTED = "rejected"
FAILURE_NO_RECORD = "no_record"


@dataclass(frozen=True)
class RegistryQueryResult:
    success: bool
    registration_number: str | None = None
    status_text: str | None = None
    legal_name: str | None = None
    result_code: str | None = None
    message: str | None = None
    failure: str | None = None
    raw_xml: str | None = None


@dataclass(frozen=True)
class ProtocolQueryResult:
    protocol_number: str | None
    result_code: str | None = None
    message: str | None = None
    raw_xml: str | None = None


@dataclass(frozen=True)
class EventSubmissionResult:
    success: bool
    batch_code: str | None
    batch_message: str | None
    event_code: str | None
    event_message: str | None
    protocol_number: str | None
    request_xml: str
    response_xml: str

    @property
    def result_code(self) -> str | None:
        return self.event_code or self.batch_code

    @property
    def result_message(self) -> str | None:
        return self.event_message or self.batch_message


class GovernmentSoapClient:
    """
    Client for registry queries, protocol queries and event submissions.

    Args:
        transport: Transport implementation (HttpTransport by default).
        policy: Retry policy for transport failures.
        sleeper: Sleeper used between attempts (real sleep by default).
        timeout: Per-attempt timeout in seconds.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        policy: RetryPolicy | None = None,
        sleeper: Sleeper | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self._transport = transport or HttpTransport()
        self._policy = policy or RetryPolicy()
        self._sleeper = sleeper or SystemSleeper()
        self._timeout = timeout

    @classmethod
    def from_config(cls, config, transport: Transport | None = None, sleeper: Sleeper | None = None):
        """Build from a fiscal_config AuthorityConfig."""
        return cls(
            transport=transport,
            policy=RetryPolicy(
                max_attempts=config.max_attempts,
                base_delay=config.base_delay_seconds,
                multiplier=config.backoff_multiplier,
            ),
            sleeper=sleeper,
            timeout=config.timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Transport under retry
    # ------------------------------------------------------------------

    def _send(
        self,
        url: str,
        service: str,
        body: str,
        client_cert: tuple[str, str] | None = None,
    ) -> str:
        definition = SERVICES[service]
        attempts = 0

        def attempt() -> str:
            nonlocal attempts
            attempts += 1
            response = self._transport.post(
                url,
                body,
                soap_action=definition.soap_action,
                timeout=self._timeout,
                client_cert=client_cert,
            )
            return response.body

        try:
            return retry(
                self._policy,
                attempt,
                retry_on=(TransportError,),
                sleeper=self._sleeper,
                operation_name=definition.name,
            )
        except TransportError as exc:
            raise TransportError(
                f"{definition.name} failed after {attempts} attempt(s): {exc}",
                url=url,
                attempts=attempts,
            ) from exc

    # ------------------------------------------------------------------
    # Registry query
    # ------------------------------------------------------------------

    def query(
        self,
        jurisdiction: str,
        tax_id: str,
        environment: Environment | str | None = Environment.PRODUCTION,
    ) -> RegistryQueryResult:
        """Look up the regional registration of ``tax_id`` in ``jurisdiction``."""
        env = Environment.parse(environment) or Environment.PRODUCTION
        try:
            url = resolve_endpoint(jurisdiction, env, REGISTRY_QUERY)
        except UnsupportedJurisdictionError as exc:
            return RegistryQueryResult(
                success=False,
                message=str(exc),
                failure=FAILURE_UNSUPPORTED_JURISDICTION,
            )

        if not is_valid_tax_id(tax_id):
            return RegistryQueryResult(
                success=False,
                message="Tax id must have 14 digits",
                failure=FAILURE_INVALID_TAX_ID,
            )

        logger.info(
            "registry_query_started",
            extra={
                "jurisdiction": jurisdiction,
                "tax_id": mask_tax_id(tax_id),
                "environment": env.value,
            },
        )
        try:
            raw = self._send(url, REGISTRY_QUERY, build_registry_query(only_digits(tax_id), jurisdiction))
        except TransportError as exc:
            logger.warning("registry_query_transport_failed", extra={"error": str(exc)})
            return RegistryQueryResult(success=False, message=str(exc), failure=FAILURE_TRANSPORT)

        try:
            return self._parse_registry(raw)
        except ResponseParseError as exc:
            logger.warning("registry_query_parse_failed", extra={"error": str(exc)})
            return RegistryQueryResult(
                success=False,
                message=str(exc),
                failure=FAILURE_PARSE,
                raw_xml=raw,
            )

    def _parse_registry(self, raw: str) -> RegistryQueryResult:
        tree = parse_xml(raw)
        fault = soap_fault_reason(tree)
        if fault:
            raise ResponseParseError(f"SOAP Fault: {fault}", raw_xml=raw)

        body = soap_body(tree) or {}
        response = body.get("consultaCadastroResponse") or body.get("nfeResultMsg")
        ret = dig(response, "retConsCad") or response
        if not isinstance(first(ret), dict):
            raise ResponseParseError("Invalid response structure", raw_xml=raw)

        info = dig(ret, "infCons")
        code = text_of(dig(info, "cStat")) or text_of(dig(ret, "cStat"))
        message = text_of(dig(info, "xMotivo")) or text_of(dig(ret, "xMotivo"))

        if code != REGISTRY_FOUND:
            return RegistryQueryResult(
                success=False,
                result_code=code,
                message=f"Authority returned status {code}: {message}",
                failure=FAILURE_REJECTED,
                raw_xml=raw,
            )

        record = first(dig(info, "infCad"))
        if not isinstance(record, dict):
            return RegistryQueryResult(
                success=False,
                result_code=code,
                message="No registration data found",
                failure=FAILURE_NO_RECORD,
                raw_xml=raw,
            )

        return RegistryQueryResult(
            success=True,
            registration_number=text_of(record.get("IE")),
            status_text=text_of(record.get("cSit")) or text_of(record.get("indCredNFe")),
            legal_name=text_of(record.get("xNome")),
            result_code=code,
            message=message,
            raw_xml=raw,
        )

    # ------------------------------------------------------------------
    # Protocol query
    # ------------------------------------------------------------------

    def query_protocol(
        self,
        access_key: str,
        jurisdiction: str,
        environment: Environment | str | None,
        credentials: SigningCredentials | None = None,
    ) -> ProtocolQueryResult:
        """Ask the authority for the authorization protocol of ``access_key``."""
        env = Environment.parse(environment) or Environment.STAGING
        url = resolve_endpoint(jurisdiction, env, PROTOCOL_QUERY)
        raw = self._send(
            url,
            PROTOCOL_QUERY,
            build_protocol_query(access_key, env),
            client_cert=credentials.client_cert if credentials else None,
        )

        code = message = protocol = None
        try:
            tree = parse_xml(raw)
            fault = soap_fault_reason(tree)
            if fault:
                message = f"SOAP Fault: {fault}"
            else:
                ret = dig(soap_body(tree), "nfeResultMsg", "retConsSitNFe")
                code = text_of(dig(ret, "cStat"))
                message = text_of(dig(ret, "xMotivo"))
                protocol = text_of(dig(ret, "protNFe", "infProt", "nProt"))
        except ResponseParseError as exc:
            message = str(exc)

        protocol = protocol or find_protocol_number(raw)
        logger.info(
            "protocol_query_completed",
            extra={"result_code": code, "found": protocol is not None},
        )
        return ProtocolQueryResult(
            protocol_number=protocol,
            result_code=code,
            message=message,
            raw_xml=raw,
        )

    # ------------------------------------------------------------------
    # Event submission
    # ------------------------------------------------------------------

    def submit_correction_event(
        self,
        request: CorrectionEventRequest,
        credentials: SigningCredentials,
        signer: EventSigner | None = None,
    ) -> EventSubmissionResult:
        """Sign and transmit a correction event; capture both XML documents."""
        url = resolve_endpoint(request.jurisdiction, request.environment, EVENT_SUBMISSION)
        signer = signer or XmlEventSigner()
        signed_xml = signer.sign(build_correction_event(request), credentials)

        logger.info(
            "correction_event_submission_started",
            extra={
                "jurisdiction": request.jurisdiction,
                "environment": request.environment.value,
                "sequence": request.sequence,
            },
        )
        try:
            raw = self._send(
                url,
                EVENT_SUBMISSION,
                build_event_submission(signed_xml),
                client_cert=credentials.client_cert,
            )
            return self._parse_event_submission(raw, signed_xml)
        except (TransportError, ResponseParseError) as exc:
            exc.request_xml = signed_xml
            raise

    def _parse_event_submission(self, raw: str, signed_xml: str) -> EventSubmissionResult:
        tree = parse_xml(raw)
        fault = soap_fault_reason(tree)
        if fault:
            raise ResponseParseError(f"SOAP Fault: {fault}", raw_xml=raw)

        ret = dig(soap_body(tree), "nfeResultMsg", "retEnvEvento")
        batch_code = text_of(dig(ret, "cStat"))
        if batch_code is None:
            raise ResponseParseError("Invalid event response: retEnvEvento/cStat missing", raw_xml=raw)
        batch_message = text_of(dig(ret, "xMotivo"))

        info = dig(ret, "retEvento", "infEvento")
        event_code = text_of(dig(info, "cStat"))
        event_message = text_of(dig(info, "xMotivo"))
        protocol = text_of(dig(info, "nProt"))

        success = batch_code == EVENT_BATCH_PROCESSED and event_code in EVENT_REGISTERED
        logger.info(
            "correction_event_submission_completed",
            extra={
                "success": success,
                "batch_code": batch_code,
                "event_code": event_code,
            },
        )
        return EventSubmissionResult(
            success=success,
            batch_code=batch_code,
            batch_message=batch_message,
            event_code=event_code,
            event_message=event_message,
            protocol_number=protocol,
            request_xml=signed_xml,
            response_xml=raw,
        )
