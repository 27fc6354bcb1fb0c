"""
SOAP 1.2 envelope builders for the three authority operations.

Each builder returns the full request body as text.  Payload XML is built
as compact strings (no whitespace between elements) so the signed portion
canonicalizes to exactly what is transmitted.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fiscal_authority.endpoints import (
    EVENT_SUBMISSION,
    PROTOCOL_QUERY,
    REGISTRY_QUERY,
    SERVICES,
)
from fiscal_kernel.domain.access_key import only_digits
from fiscal_kernel.models.fiscal_emission import Environment

NFE_NAMESPACE = "http://www.portalfiscal.inf.br/nfe"
SOAP12_NAMESPACE = "http://www.w3.org/2003/05/soap-envelope"

CORRECTION_EVENT_TYPE = "110110"
CORRECTION_EVENT_DESCRIPTION = "Carta de Correcao"
EVENT_VERSION = "1.00"

CONDITIONS_OF_USE = (
    "A Carta de Correcao e disciplinada pelo paragrafo 1o-A do art. 7o do "
    "Convenio S/N, de 15 de dezembro de 1970 e pode ser utilizada para "
    "regularizacao de erro ocorrido na emissao de documento fiscal, desde que "
    "o erro nao esteja relacionado com: I - as variaveis que determinam o "
    "valor do imposto tais como: base de calculo, aliquota, diferenca de "
    "preco, quantidade, valor da operacao ou da prestacao; II - a correcao de "
    "dados cadastrais que implique mudanca do remetente ou do destinatario; "
    "III - a data de emissao ou de saida."
)

# Authority local time for event timestamps
AUTHORITY_TZ = timezone(timedelta(hours=-3))


def escape_xml(value: object) -> str:
    text = "" if value is None else str(value)
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def strip_declaration(xml: str) -> str:
    xml = xml.lstrip()
    if xml.startswith("<?xml"):
        xml = xml[xml.index("?>") + 2:]
    return xml.lstrip()


def wrap_soap12(service: str, payload: str, operation_wrapper: bool = False) -> str:
    """Wrap ``payload`` in a SOAP 1.2 envelope for ``service``."""
    definition = SERVICES[service]
    inner = f'<nfeDadosMsg xmlns="{definition.wsdl_namespace}">{strip_declaration(payload)}</nfeDadosMsg>'
    if operation_wrapper:
        inner = (
            f'<{definition.operation} xmlns="{definition.wsdl_namespace}">'
            f"{inner}</{definition.operation}>"
        )
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<soap12:Envelope xmlns:soap12="{SOAP12_NAMESPACE}">'
        "<soap12:Header/>"
        f"<soap12:Body>{inner}</soap12:Body>"
        "</soap12:Envelope>"
    )


def build_registry_query(tax_id: str, jurisdiction: str) -> str:
    payload = (
        f'<ConsCad xmlns="{NFE_NAMESPACE}" versao="2.00">'
        "<infCons>"
        "<xServ>CONS-CAD</xServ>"
        f"<UF>{escape_xml(jurisdiction.upper())}</UF>"
        f"<CNPJ>{only_digits(tax_id)}</CNPJ>"
        "</infCons>"
        "</ConsCad>"
    )
    return wrap_soap12(REGISTRY_QUERY, payload, operation_wrapper=True)


def build_protocol_query(access_key: str, environment: Environment) -> str:
    payload = (
        f'<consSitNFe xmlns="{NFE_NAMESPACE}" versao="4.00">'
        f"<tpAmb>{environment.wire_code}</tpAmb>"
        "<xServ>CONSULTAR</xServ>"
        f"<chNFe>{only_digits(access_key)}</chNFe>"
        "</consSitNFe>"
    )
    return wrap_soap12(PROTOCOL_QUERY, payload)


@dataclass(frozen=True)
class CorrectionEventRequest:
    """Everything needed to build one correction event submission."""

    access_key: str
    issuer_tax_id: str
    sequence: int
    correction_text: str
    jurisdiction: str
    environment: Environment
    event_time: datetime

    @property
    def event_id(self) -> str:
        return f"ID{CORRECTION_EVENT_TYPE}{only_digits(self.access_key)}{self.sequence:02d}"

    @property
    def lot_id(self) -> str:
        return str(int(self.event_time.timestamp() * 1000))[-15:]


def format_event_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(AUTHORITY_TZ).isoformat(timespec="seconds")


def build_correction_event(request: CorrectionEventRequest) -> str:
    """Unsigned ``envEvento`` document for a correction letter."""
    key = only_digits(request.access_key)
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<envEvento xmlns="{NFE_NAMESPACE}" versao="{EVENT_VERSION}">'
        f"<idLote>{request.lot_id}</idLote>"
        f'<evento versao="{EVENT_VERSION}">'
        f'<infEvento Id="{request.event_id}">'
        f"<cOrgao>{key[:2]}</cOrgao>"
        f"<tpAmb>{request.environment.wire_code}</tpAmb>"
        f"<CNPJ>{only_digits(request.issuer_tax_id)}</CNPJ>"
        f"<chNFe>{key}</chNFe>"
        f"<dhEvento>{format_event_time(request.event_time)}</dhEvento>"
        f"<tpEvento>{CORRECTION_EVENT_TYPE}</tpEvento>"
        f"<nSeqEvento>{request.sequence}</nSeqEvento>"
        f"<verEvento>{EVENT_VERSION}</verEvento>"
        f'<detEvento versao="{EVENT_VERSION}">'
        f"<descEvento>{CORRECTION_EVENT_DESCRIPTION}</descEvento>"
        f"<xCorrecao>{escape_xml(request.correction_text)}</xCorrecao>"
        f"<xCondUso>{CONDITIONS_OF_USE}</xCondUso>"
        "</detEvento>"
        "</infEvento>"
        "</evento>"
        "</envEvento>"
    )


def build_event_submission(signed_event_xml: str) -> str:
    return wrap_soap12(EVENT_SUBMISSION, signed_event_xml)
