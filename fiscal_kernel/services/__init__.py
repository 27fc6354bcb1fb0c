"""Kernel services: the imperative shell around the pure domain rules."""

from fiscal_kernel.services.certificate_store import (
    CertificateStore,
    Pkcs12CertificateStore,
)
from fiscal_kernel.services.correction_event_service import (
    CORRECTION_EVENT_JOB_TYPE,
    CorrectionEventService,
    JobQueue,
)
from fiscal_kernel.services.correction_event_worker import (
    CorrectionEventWorker,
    user_message,
)
from fiscal_kernel.services.organization_directory import OrganizationDirectory
from fiscal_kernel.services.protocol_recovery import (
    LEGACY_PROTOCOL_PATHS,
    ArchivedXmlSource,
    CanonicalFieldSource,
    LegacyPath,
    LegacyRecordSource,
    LiveAuthoritySource,
    ProtocolRecoveryResolver,
    ProtocolSource,
    extract_legacy_protocol,
)
from fiscal_kernel.services.registry_lookup import (
    RegistryLookupCache,
    RegistryLookupResult,
)

__all__ = [
    "CORRECTION_EVENT_JOB_TYPE",
    "LEGACY_PROTOCOL_PATHS",
    "ArchivedXmlSource",
    "CanonicalFieldSource",
    "CertificateStore",
    "CorrectionEventService",
    "CorrectionEventWorker",
    "JobQueue",
    "LegacyPath",
    "LegacyRecordSource",
    "LiveAuthoritySource",
    "OrganizationDirectory",
    "Pkcs12CertificateStore",
    "ProtocolRecoveryResolver",
    "ProtocolSource",
    "RegistryLookupCache",
    "RegistryLookupResult",
    "extract_legacy_protocol",
    "user_message",
]
