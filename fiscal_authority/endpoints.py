"""
Static endpoint table for the tax-authority web services.

Keyed by jurisdiction (two-letter state code), then by service, then by
environment.  Resolution fails before any I/O for an unknown jurisdiction
or a service the jurisdiction does not expose.
"""

from dataclasses import dataclass

from fiscal_kernel.exceptions import UnsupportedJurisdictionError
from fiscal_kernel.models.fiscal_emission import Environment

REGISTRY_QUERY = "registry_query"
PROTOCOL_QUERY = "protocol_query"
EVENT_SUBMISSION = "event_submission"


@dataclass(frozen=True)
class ServiceDefinition:
    """Per-service constants shared by every jurisdiction."""

    name: str
    wsdl_namespace: str
    operation: str

    @property
    def soap_action(self) -> str:
        return f"{self.wsdl_namespace}/{self.operation}"


SERVICES: dict[str, ServiceDefinition] = {
    REGISTRY_QUERY: ServiceDefinition(
        name="CadConsultaCadastro4",
        wsdl_namespace="http://www.portalfiscal.inf.br/nfe/wsdl/CadConsultaCadastro4",
        operation="consultaCadastro",
    ),
    PROTOCOL_QUERY: ServiceDefinition(
        name="NFeConsultaProtocolo4",
        wsdl_namespace="http://www.portalfiscal.inf.br/nfe/wsdl/NFeConsultaProtocolo4",
        operation="nfeConsultaNF",
    ),
    EVENT_SUBMISSION: ServiceDefinition(
        name="NFeRecepcaoEvento4",
        wsdl_namespace="http://www.portalfiscal.inf.br/nfe/wsdl/NFeRecepcaoEvento4",
        operation="nfeRecepcaoEvento",
    ),
}


ENDPOINTS: dict[str, dict[str, dict[Environment, str]]] = {
    "SP": {
        REGISTRY_QUERY: {
            Environment.PRODUCTION: "https://nfe.fazenda.sp.gov.br/ws/cadconsultacadastro4.asmx",
            Environment.STAGING: "https://homologacao.nfe.fazenda.sp.gov.br/ws/cadconsultacadastro4.asmx",
        },
        PROTOCOL_QUERY: {
            Environment.PRODUCTION: "https://nfe.fazenda.sp.gov.br/ws/nfeconsultaprotocolo4.asmx",
            Environment.STAGING: "https://homologacao.nfe.fazenda.sp.gov.br/ws/nfeconsultaprotocolo4.asmx",
        },
        EVENT_SUBMISSION: {
            Environment.PRODUCTION: "https://nfe.fazenda.sp.gov.br/ws/nferecepcaoevento4.asmx",
            Environment.STAGING: "https://homologacao.nfe.fazenda.sp.gov.br/ws/nferecepcaoevento4.asmx",
        },
    },
    "MG": {
        REGISTRY_QUERY: {
            Environment.PRODUCTION: "https://nfe.fazenda.mg.gov.br/nfe2/services/CadConsultaCadastro4",
            Environment.STAGING: "https://hnfe.fazenda.mg.gov.br/nfe2/services/CadConsultaCadastro4",
        },
        PROTOCOL_QUERY: {
            Environment.PRODUCTION: "https://nfe.fazenda.mg.gov.br/nfe2/services/NFeConsultaProtocolo4",
            Environment.STAGING: "https://hnfe.fazenda.mg.gov.br/nfe2/services/NFeConsultaProtocolo4",
        },
        EVENT_SUBMISSION: {
            Environment.PRODUCTION: "https://nfe.fazenda.mg.gov.br/nfe2/services/NFeRecepcaoEvento4",
            Environment.STAGING: "https://hnfe.fazenda.mg.gov.br/nfe2/services/NFeRecepcaoEvento4",
        },
    },
    "RS": {
        PROTOCOL_QUERY: {
            Environment.PRODUCTION: "https://nfe.sefazrs.rs.gov.br/ws/NfeConsulta/NfeConsulta4.asmx",
            Environment.STAGING: "https://nfe-homologacao.sefazrs.rs.gov.br/ws/NfeConsulta/NfeConsulta4.asmx",
        },
        EVENT_SUBMISSION: {
            Environment.PRODUCTION: "https://nfe.sefazrs.rs.gov.br/ws/recepcaoevento/recepcaoevento4.asmx",
            Environment.STAGING: "https://nfe-homologacao.sefazrs.rs.gov.br/ws/recepcaoevento/recepcaoevento4.asmx",
        },
    },
}


def resolve_endpoint(
    jurisdiction: str | None,
    environment: Environment | str | None,
    service: str,
) -> str:
    """
    Look up the URL for (jurisdiction, environment, service).

    Raises:
        UnsupportedJurisdictionError: Unknown jurisdiction, or the
            jurisdiction does not expose ``service``.
    """
    if service not in SERVICES:
        raise ValueError(f"Unknown authority service: {service}")
    uf = (jurisdiction or "").strip().upper()
    services = ENDPOINTS.get(uf)
    if services is None or service not in services:
        raise UnsupportedJurisdictionError(jurisdiction, service=service)
    env = Environment.parse(environment) or Environment.STAGING
    return services[service][env]
