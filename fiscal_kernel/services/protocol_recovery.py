"""
ProtocolRecoveryResolver -- reconstructs a missing authorization protocol.

Responsibility:
    Finds the authority-issued protocol number of a fiscal emission from the
    cheapest evidence available and writes it back onto the emission so the
    next resolution stops at the first tier.

Architecture position:
    Kernel > Services.  Consumed by CorrectionEventWorker; the last tier
    calls GovernmentSoapClient.

Tier chain (first non-empty answer wins):
    1. CanonicalFieldSource  -- FiscalEmission.protocol_number.
    2. ArchivedXmlSource     -- element match in the archived authorized XML.
    3. LegacyRecordSource    -- most recent legacy record for the access key,
                                probed along LEGACY_PROTOCOL_PATHS.
    4. LiveAuthoritySource   -- live protocol query; also backfills missing
                                jurisdiction / environment.

Invariants enforced:
    - Write-back is additive: a stored protocol, jurisdiction or environment
      is never blanked or replaced.

Failure modes:
    - "Not found" at every tier returns None.
    - TransportError and CertificateError from tier 4 propagate.
    - Write-back storage errors are logged and swallowed; the recovered
      value is still returned.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fiscal_authority.client import GovernmentSoapClient
from fiscal_authority.parsing import find_protocol_number
from fiscal_kernel.domain.access_key import jurisdiction_from_access_key
from fiscal_kernel.exceptions import UnsupportedJurisdictionError
from fiscal_kernel.logging_config import LogContext, get_logger
from fiscal_kernel.models.fiscal_emission import Environment, FiscalEmission
from fiscal_kernel.models.reference import CompanySettings, LegacyEmissionRecord
from fiscal_kernel.services.certificate_store import CertificateStore

logger = get_logger("services.protocol_recovery")


# ---------------------------------------------------------------------------
# Legacy record probing
# ---------------------------------------------------------------------------


def read_protocol_value(value: Any) -> str | None:
    """Accept non-blank strings (trimmed) and numbers; reject everything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return None


@dataclass(frozen=True)
class LegacyPath:
    """One known location of a protocol number inside legacy details."""

    path: tuple[str, ...]
    reader: Callable[[Any], str | None] = read_protocol_value

    @classmethod
    def of(cls, dotted: str, reader: Callable[[Any], str | None] = read_protocol_value) -> "LegacyPath":
        return cls(path=tuple(dotted.split(".")), reader=reader)

    def read(self, details: Any) -> str | None:
        node = details
        for key in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return self.reader(node)


LEGACY_PROTOCOL_PATHS: tuple[LegacyPath, ...] = (
    LegacyPath.of("protNFe.infProt.nProt"),
    LegacyPath.of("retEvento.infEvento.nProt"),
    LegacyPath.of("authorization.nProt"),
    LegacyPath.of("nProt"),
    LegacyPath.of("sefaz.nProt"),
    LegacyPath.of("protCons.nProt"),
    LegacyPath.of("infProt.nProt"),
)


def extract_legacy_protocol(
    details: Any,
    paths: Sequence[LegacyPath] = LEGACY_PROTOCOL_PATHS,
) -> str | None:
    """First protocol-like value found along ``paths`` in ``details``."""
    if isinstance(details, str):
        try:
            details = json.loads(details)
        except ValueError:
            return None
    if not isinstance(details, dict):
        return None
    for candidate in paths:
        value = candidate.read(details)
        if value:
            return value
    return None


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def resolve_authority_target(
    session: Session,
    emission: FiscalEmission,
) -> tuple[str | None, Environment]:
    """
    Jurisdiction and environment for talking to the authority about
    ``emission``.  Jurisdiction: the emission's field, then the state code
    inside the access key, then the tenant default.  Environment: the
    emission's field, then the tenant default, then staging.
    """
    settings = session.scalars(
        select(CompanySettings).where(CompanySettings.company_id == emission.company_id)
    ).first()
    jurisdiction = (
        emission.jurisdiction
        or jurisdiction_from_access_key(emission.access_key)
        or (settings.default_jurisdiction if settings else None)
    )
    environment = (
        Environment.parse(emission.environment)
        or (Environment.parse(settings.environment) if settings else None)
        or Environment.STAGING
    )
    return jurisdiction, environment


class ProtocolSource(ABC):
    """One tier of the recovery chain."""

    name: str = "source"

    @abstractmethod
    def find(self, emission: FiscalEmission) -> str | None:
        ...

    def backfill(self, emission: FiscalEmission) -> dict[str, str]:
        """Extra emission fields to fill when this tier wins."""
        return {}


class CanonicalFieldSource(ProtocolSource):
    name = "canonical"

    def find(self, emission: FiscalEmission) -> str | None:
        return read_protocol_value(emission.protocol_number)


class ArchivedXmlSource(ProtocolSource):
    name = "archived_xml"

    def find(self, emission: FiscalEmission) -> str | None:
        return find_protocol_number(emission.authorized_xml)


class LegacyRecordSource(ProtocolSource):
    name = "legacy_record"

    def __init__(self, session: Session, paths: Sequence[LegacyPath] = LEGACY_PROTOCOL_PATHS):
        self.session = session
        self.paths = tuple(paths)

    def find(self, emission: FiscalEmission) -> str | None:
        record = self.session.scalars(
            select(LegacyEmissionRecord)
            .where(LegacyEmissionRecord.access_key == emission.access_key)
            .order_by(
                LegacyEmissionRecord.issued_at.desc().nulls_last(),
                LegacyEmissionRecord.created_at.desc(),
            )
            .limit(1)
        ).first()
        if record is None:
            return None
        return extract_legacy_protocol(record.details, self.paths)


class LiveAuthoritySource(ProtocolSource):
    """Live protocol query against the emission's jurisdiction."""

    name = "live_authority"

    def __init__(
        self,
        session: Session,
        client: GovernmentSoapClient,
        certificate_store: CertificateStore,
    ):
        self.session = session
        self.client = client
        self.certificate_store = certificate_store

    def find(self, emission: FiscalEmission) -> str | None:
        jurisdiction, environment = resolve_authority_target(self.session, emission)
        if not jurisdiction:
            logger.warning(
                "protocol_live_query_skipped",
                extra={"reason": "jurisdiction_unknown"},
            )
            return None
        try:
            with self.certificate_store.acquire(emission.company_id) as credentials:
                result = self.client.query_protocol(
                    emission.access_key,
                    jurisdiction,
                    environment,
                    credentials,
                )
        except UnsupportedJurisdictionError as exc:
            logger.warning(
                "protocol_live_query_skipped",
                extra={"reason": "unsupported_jurisdiction", "jurisdiction": exc.jurisdiction},
            )
            return None
        return read_protocol_value(result.protocol_number)

    def backfill(self, emission: FiscalEmission) -> dict[str, str]:
        jurisdiction, environment = resolve_authority_target(self.session, emission)
        fields: dict[str, str] = {}
        if not emission.jurisdiction and jurisdiction:
            fields["jurisdiction"] = jurisdiction
        if not emission.environment:
            fields["environment"] = environment.value
        return fields


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ProtocolRecoveryResolver:
    """
    Runs the source chain and heals the canonical field.

    Args:
        session: Session shared with the caller; write-back is flushed, not
            committed.
        sources: Ordered chain.  Use ``default_sources`` for the standard one.
    """

    def __init__(self, session: Session, sources: Sequence[ProtocolSource]):
        self.session = session
        self.sources = tuple(sources)

    @classmethod
    def default_sources(
        cls,
        session: Session,
        client: GovernmentSoapClient,
        certificate_store: CertificateStore,
    ) -> "ProtocolRecoveryResolver":
        return cls(
            session,
            (
                CanonicalFieldSource(),
                ArchivedXmlSource(),
                LegacyRecordSource(session),
                LiveAuthoritySource(session, client, certificate_store),
            ),
        )

    def resolve(self, emission_id: UUID, company_id: UUID | None = None) -> str | None:
        stmt = select(FiscalEmission).where(FiscalEmission.id == emission_id)
        if company_id is not None:
            stmt = stmt.where(FiscalEmission.company_id == company_id)
        emission = self.session.scalars(stmt).first()
        if emission is None:
            logger.warning("protocol_recovery_emission_not_found", extra={"emission_id": str(emission_id)})
            return None
        return self.resolve_for(emission)

    def resolve_for(self, emission: FiscalEmission) -> str | None:
        with LogContext.bind(emission_id=emission.id):
            for tier, source in enumerate(self.sources, start=1):
                protocol = source.find(emission)
                if not protocol:
                    continue
                logger.info(
                    "protocol_resolved",
                    extra={"source": source.name, "tier": tier},
                )
                if tier > 1:
                    self._write_back(emission, protocol, source.backfill(emission))
                return protocol

            logger.warning("protocol_unresolved", extra={"tiers": len(self.sources)})
            return None

    def _write_back(self, emission: FiscalEmission, protocol: str, extra: dict[str, str]) -> None:
        changed: list[str] = []
        if not (emission.protocol_number or "").strip():
            emission.protocol_number = protocol
            changed.append("protocol_number")
        for field, value in extra.items():
            if not getattr(emission, field):
                setattr(emission, field, value)
                changed.append(field)
        if not changed:
            return
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning(
                "protocol_write_back_failed",
                extra={"fields": changed, "error": str(exc)},
            )
            return
        logger.info("protocol_write_back", extra={"fields": changed})
