"""
RegistryLookupCache -- TTL-cached, never-raising registration lookup.

Responsibility:
    Keeps a counterparty's regional registration number fresh by querying
    the authority at most once per ``cache_days`` unless forced.

Architecture position:
    Kernel > Services.  Runs from background and onboarding flows, outside
    the correction event path.

Invariants enforced:
    - registration_checked_at is refreshed on every live attempt, success
      or failure (negative caching).
    - registration_number changes only on a successful lookup.

Failure modes:
    None raised.  Every failure, including storage errors and exceptions
    from the client, comes back as RegistryLookupResult(success=False).
"""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fiscal_authority.client import GovernmentSoapClient
from fiscal_kernel.db.base import as_utc
from fiscal_kernel.domain.access_key import TAX_ID_LENGTH, mask_tax_id, only_digits
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.logging_config import get_logger
from fiscal_kernel.models.counterparty import Counterparty
from fiscal_kernel.models.fiscal_emission import Environment

logger = get_logger("services.registry_lookup")

DEFAULT_CACHE_DAYS = 30
REGISTRATION_SOURCE = "authority"
LOOKUP_FAILED_STATUS = "lookup_failed"


@dataclass(frozen=True)
class RegistryLookupResult:
    success: bool
    cached: bool = False
    value: str | None = None
    error: str | None = None


class RegistryLookupCache:
    """
    Args:
        session: Session owned by the caller; each live attempt commits.
        client: Authority client used for live lookups.
        clock: Time source for TTL checks and timestamps.
        cache_days: Age under which a previous check is reused.
        environment: Authority environment for registry queries.
    """

    def __init__(
        self,
        session: Session,
        client: GovernmentSoapClient,
        clock: Clock | None = None,
        cache_days: int = DEFAULT_CACHE_DAYS,
        environment: Environment = Environment.PRODUCTION,
    ):
        self.session = session
        self.client = client
        self._clock = clock or SystemClock()
        self.cache_ttl = timedelta(days=cache_days)
        self.environment = environment

    def lookup(self, subject_id: UUID, force: bool = False) -> RegistryLookupResult:
        try:
            return self._lookup(subject_id, force)
        except Exception as exc:
            logger.error(
                "registry_lookup_unexpected_error",
                extra={"subject_id": str(subject_id), "error": str(exc)},
                exc_info=True,
            )
            try:
                self.session.rollback()
            except SQLAlchemyError:
                logger.error(
                    "registry_lookup_rollback_failed",
                    extra={"subject_id": str(subject_id)},
                    exc_info=True,
                )
            return RegistryLookupResult(success=False, error=f"Unexpected error: {exc}")

    def _lookup(self, subject_id: UUID, force: bool) -> RegistryLookupResult:
        counterparty = self.session.get(Counterparty, subject_id)
        if counterparty is None:
            return self._fail(subject_id, "Counterparty not found")

        checked_at = as_utc(counterparty.registration_checked_at)
        if not force and checked_at is not None and self._clock.now() - checked_at < self.cache_ttl:
            logger.info(
                "registry_lookup_cache_hit",
                extra={"subject_id": str(subject_id), "has_value": bool(counterparty.registration_number)},
            )
            if counterparty.registration_number:
                return RegistryLookupResult(success=True, cached=True, value=counterparty.registration_number)
            return RegistryLookupResult(
                success=False,
                cached=True,
                error=counterparty.registration_status or "Previous lookup failed",
            )

        address = counterparty.default_address
        jurisdiction = (address.state or "").strip().upper() if address else ""
        if not jurisdiction:
            return self._fail(subject_id, "Default address with a state is required")

        tax_id = only_digits(counterparty.document_number)
        if len(tax_id) != TAX_ID_LENGTH:
            return self._fail(subject_id, f"Tax id must have {TAX_ID_LENGTH} digits")

        logger.info(
            "registry_lookup_live",
            extra={
                "subject_id": str(subject_id),
                "jurisdiction": jurisdiction,
                "tax_id": mask_tax_id(tax_id),
                "forced": force,
            },
        )
        try:
            result = self.client.query(jurisdiction, tax_id, self.environment)
            success = result.success and bool(result.registration_number)
            error = None if success else (result.message or "Registration not found")
        except Exception as exc:
            logger.warning(
                "registry_lookup_client_error",
                extra={"subject_id": str(subject_id), "error": str(exc)},
            )
            success, error, result = False, str(exc), None

        counterparty.registration_checked_at = self._clock.now()
        if success:
            counterparty.registration_number = result.registration_number
            counterparty.registration_source = REGISTRATION_SOURCE
            counterparty.registration_status = result.status_text
        else:
            counterparty.registration_status = LOOKUP_FAILED_STATUS
        self.session.commit()

        if success:
            logger.info("registry_lookup_succeeded", extra={"subject_id": str(subject_id)})
            return RegistryLookupResult(success=True, cached=False, value=result.registration_number)
        return self._fail(subject_id, error)

    def _fail(self, subject_id: UUID, error: str) -> RegistryLookupResult:
        logger.warning(
            "registry_lookup_failed",
            extra={"subject_id": str(subject_id), "error": error},
        )
        return RegistryLookupResult(success=False, error=error)
