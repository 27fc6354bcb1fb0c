"""Tax-authority SOAP/XML client: endpoints, envelopes, transport, parsing, signing."""

from fiscal_authority.client import (
    EventSubmissionResult,
    GovernmentSoapClient,
    ProtocolQueryResult,
    RegistryQueryResult,
)
from fiscal_authority.envelope import CorrectionEventRequest
from fiscal_authority.signing import SigningCredentials, XmlEventSigner
from fiscal_authority.transport import HttpTransport, Transport, TransportResponse

__all__ = [
    "CorrectionEventRequest",
    "EventSubmissionResult",
    "GovernmentSoapClient",
    "HttpTransport",
    "ProtocolQueryResult",
    "RegistryQueryResult",
    "SigningCredentials",
    "Transport",
    "TransportResponse",
    "XmlEventSigner",
]
