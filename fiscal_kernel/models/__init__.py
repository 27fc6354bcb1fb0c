"""ORM models for the fiscal kernel."""

from fiscal_kernel.models.correction_event import (
    AUTHORITY_FIELDS,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    CorrectionEvent,
    CorrectionEventStatus,
)
from fiscal_kernel.models.counterparty import Counterparty, CounterpartyAddress
from fiscal_kernel.models.fiscal_emission import (
    EmissionStatus,
    Environment,
    FiscalEmission,
)
from fiscal_kernel.models.reference import (
    CompanySettings,
    IssuerOrganization,
    LegacyEmissionRecord,
)

__all__ = [
    "AUTHORITY_FIELDS",
    "TERMINAL_STATUSES",
    "VALID_TRANSITIONS",
    "CompanySettings",
    "CorrectionEvent",
    "CorrectionEventStatus",
    "Counterparty",
    "CounterpartyAddress",
    "EmissionStatus",
    "Environment",
    "FiscalEmission",
    "IssuerOrganization",
    "LegacyEmissionRecord",
]
