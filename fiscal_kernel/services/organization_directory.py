"""
OrganizationDirectory -- issuer tax-id lookup by tenant.

Used as the fallback when the issuer tax id cannot be decoded from the
access key.  Preference order:

    1. The organization whose id equals the tenant id.
    2. The most recently created active organization of the tenant.

A candidate is only accepted when its document number has exactly 14 digits.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fiscal_kernel.domain.access_key import TAX_ID_LENGTH, only_digits
from fiscal_kernel.logging_config import get_logger
from fiscal_kernel.models.reference import IssuerOrganization

logger = get_logger("services.organization_directory")


class OrganizationDirectory:
    def __init__(self, session: Session):
        self.session = session

    def find_issuer_tax_id(self, company_id: UUID) -> str | None:
        candidates: list[IssuerOrganization] = []

        exact = self.session.get(IssuerOrganization, company_id)
        if exact is not None:
            candidates.append(exact)

        stmt = (
            select(IssuerOrganization)
            .where(
                IssuerOrganization.company_id == company_id,
                IssuerOrganization.is_active.is_(True),
            )
            .order_by(IssuerOrganization.created_at.desc())
        )
        candidates.extend(self.session.scalars(stmt).all())

        for org in candidates:
            digits = only_digits(org.document_number)
            if len(digits) == TAX_ID_LENGTH:
                return digits

        logger.warning(
            "issuer_tax_id_not_found",
            extra={"company_id": str(company_id), "candidates": len(candidates)},
        )
        return None
