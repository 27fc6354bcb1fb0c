"""
Module: fiscal_kernel.models.counterparty
Responsibility: The slice of the counterparty record this kernel owns: the
    national tax id, the default address jurisdiction, and the cached
    regional registration number looked up from the authority.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - registration_checked_at is refreshed on every live lookup attempt
      (negative caching); registration_number only on success.
      (Enforced by RegistryLookupCache, not at the ORM level.)
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fiscal_kernel.db.base import TimestampedBase, UUIDString


class Counterparty(TimestampedBase):
    """A customer or supplier with a cached regional registration number."""

    __tablename__ = "counterparties"

    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    # National tax id as captured (may carry punctuation)
    document_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    registration_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Where registration_number came from ("authority", "manual", ...)
    registration_source: Mapped[str | None] = mapped_column(String(20), nullable=True)

    registration_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Last-known authority status text, or "lookup_failed"
    registration_status: Mapped[str | None] = mapped_column(String(60), nullable=True)

    addresses: Mapped[list["CounterpartyAddress"]] = relationship(
        back_populates="counterparty",
        cascade="all, delete-orphan",
    )

    @property
    def default_address(self) -> "CounterpartyAddress | None":
        for address in self.addresses:
            if address.is_default:
                return address
        return None


class CounterpartyAddress(TimestampedBase):
    """Postal address; only the jurisdiction of the default one matters here."""

    __tablename__ = "counterparty_addresses"

    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("counterparties.id"),
        nullable=False,
    )

    # Two-letter state code
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    counterparty: Mapped[Counterparty] = relationship(back_populates="addresses")
