"""
Module: fiscal_kernel.models.fiscal_emission
Responsibility: ORM persistence for electronic fiscal documents that the
    (external) issuance pipeline has already submitted to the tax authority.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - access_key is exactly the authority's 44-digit key (UNIQUE).
    - Once a non-empty protocol_number is stored it is never blanked nor
      replaced (db/immutability.py).

Audit relevance:
    protocol_number is the authority's proof of authorization.  Correction
    events may only be transmitted against an emission whose protocol is
    known; ProtocolRecoveryResolver backfills it when it is missing.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fiscal_kernel.db.base import TimestampedBase, UUIDString


class EmissionStatus(str, Enum):
    """Status of a fiscal emission as mirrored from the issuance pipeline."""

    AUTHORIZED = "authorized"
    CANCELLED = "cancelled"
    PROCESSING = "processing"
    REJECTED = "rejected"
    DENIED = "denied"
    ERROR = "error"


class Environment(str, Enum):
    """Authority environment.  The wire code is ``1`` / ``2``."""

    PRODUCTION = "production"
    STAGING = "staging"

    @property
    def wire_code(self) -> str:
        return "1" if self is Environment.PRODUCTION else "2"

    @classmethod
    def parse(cls, value: "str | Environment | None") -> "Environment | None":
        """Accept enum members, names, or wire codes; None for blanks."""
        if value is None or value == "":
            return None
        if isinstance(value, Environment):
            return value
        text = str(value).strip().lower()
        if text in ("1", "production", "producao"):
            return cls.PRODUCTION
        if text in ("2", "staging", "homologacao"):
            return cls.STAGING
        raise ValueError(f"Unknown environment: {value!r}")


class FiscalEmission(TimestampedBase):
    """
    An electronic fiscal document already submitted to the authority.

    Non-goals:
        - Issuance itself (building, signing, submitting the document) is
          owned by an external pipeline; this model is read-mostly here.
    """

    __tablename__ = "fiscal_emissions"

    __table_args__ = (
        Index("idx_emission_company", "company_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    access_key: Mapped[str] = mapped_column(String(44), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EmissionStatus.AUTHORIZED.value,
    )

    # Two-letter state code of the authority (e.g. "SP")
    jurisdiction: Mapped[str | None] = mapped_column(String(2), nullable=True)

    environment: Mapped[str | None] = mapped_column(String(20), nullable=True)

    protocol_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Archived authorized document (document + authorization protocol)
    authorized_xml: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_authorized(self) -> bool:
        return self.status == EmissionStatus.AUTHORIZED.value

    @property
    def environment_enum(self) -> Environment | None:
        return Environment.parse(self.environment)

    def __repr__(self) -> str:
        return f"<FiscalEmission {self.access_key} [{self.status}]>"
