"""
Module: fiscal_kernel.models.reference
Responsibility: Reference rows owned by outer systems that the kernel reads:
    legacy emission records, the tenant's issuer organizations, and tenant
    fiscal settings (environment, default jurisdiction, certificate).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fiscal_kernel.db.base import TimestampedBase, UUIDString


class LegacyEmissionRecord(TimestampedBase):
    """
    Historical emission record from the previous storage layout.

    ``details`` holds whatever the old pipeline stored: a JSON object, or a
    JSON-encoded string, in several different shapes.
    """

    __tablename__ = "legacy_emission_records"

    __table_args__ = (
        Index("idx_legacy_emission_key", "access_key"),
    )

    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    access_key: Mapped[str] = mapped_column(String(44), nullable=False)

    status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    details: Mapped[Any] = mapped_column(JSON, nullable=True)


class IssuerOrganization(TimestampedBase):
    """Organization registered for a tenant; the directory for issuer tax ids."""

    __tablename__ = "issuer_organizations"

    __table_args__ = (
        Index("idx_issuer_org_company", "company_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    document_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CompanySettings(TimestampedBase):
    """Tenant-wide fiscal defaults and certificate location."""

    __tablename__ = "company_settings"

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)

    environment: Mapped[str | None] = mapped_column(String(20), nullable=True)

    default_jurisdiction: Mapped[str | None] = mapped_column(String(2), nullable=True)

    # Path to the PKCS#12 (.pfx) file
    certificate_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Name of the secret holding the PKCS#12 password (never the password)
    certificate_password_ref: Mapped[str | None] = mapped_column(String(200), nullable=True)
