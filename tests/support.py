"""
Shared helpers for the fiscal kernel tests: identifiers, authority response
builders, a scripted transport, and certificate factories.
"""

import itertools
from contextlib import contextmanager
from datetime import datetime, timezone
from uuid import UUID

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from fiscal_authority.signing import SigningCredentials
from fiscal_authority.transport import TransportResponse

COMPANY_ID = UUID("00000000-0000-4000-8000-000000000001")
OTHER_COMPANY_ID = UUID("00000000-0000-4000-8000-000000000002")

ISSUER_TAX_ID = "12345678000195"
EMISSION_PROTOCOL = "135240000012345"
EVENT_PROTOCOL = "135240000099999"

_key_counter = itertools.count(1)


def make_access_key(
    state_code: str = "35",
    tax_id: str = ISSUER_TAX_ID,
    number: int | None = None,
) -> str:
    """44-digit access key: state, YYMM, tax id, model, series, number, type, code, check digit."""
    number = next(_key_counter) if number is None else number
    return f"{state_code}2401{tax_id}55001{number:09d}1{number:08d}0"



# =============================================================================
# Authority responses
# =============================================================================

SOAP_ENV = "http://www.w3.org/2003/05/soap-envelope"
NFE = "http://www.portalfiscal.inf.br/nfe"


def soap_response(body: str, wsdl: str = "NFeRecepcaoEvento4") -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<soap:Envelope xmlns:soap="{SOAP_ENV}"><soap:Body>'
        f'<nfeResultMsg xmlns="http://www.portalfiscal.inf.br/nfe/wsdl/{wsdl}">{body}</nfeResultMsg>'
        "</soap:Body></soap:Envelope>"
    )


def event_response(
    batch_code: str = "128",
    event_code: str = "135",
    protocol: str | None = EVENT_PROTOCOL,
    event_message: str = "Evento registrado e vinculado a NF-e",
) -> str:
    nprot = f"<nProt>{protocol}</nProt>" if protocol else ""
    return soap_response(
        f'<retEnvEvento xmlns="{NFE}" versao="1.00">'
        "<idLote>1</idLote><tpAmb>2</tpAmb><cOrgao>35</cOrgao>"
        f"<cStat>{batch_code}</cStat><xMotivo>Lote de evento processado</xMotivo>"
        '<retEvento versao="1.00"><infEvento>'
        f"<tpAmb>2</tpAmb><cStat>{event_code}</cStat><xMotivo>{event_message}</xMotivo>"
        f"<tpEvento>110110</tpEvento>{nprot}"
        "</infEvento></retEvento>"
        "</retEnvEvento>"
    )


def registry_response(
    code: str = "111",
    registration: str | None = "110042490114",
    message: str = "Consulta cadastro com uma ocorrencia",
) -> str:
    record = (
        f"<infCad><IE>{registration}</IE><CNPJ>{ISSUER_TAX_ID}</CNPJ><UF>SP</UF>"
        "<cSit>1</cSit><xNome>EMPRESA TESTE LTDA</xNome></infCad>"
        if registration
        else ""
    )
    return soap_response(
        f'<retConsCad xmlns="{NFE}" versao="2.00"><infCons>'
        f"<verAplic>SP_NFE_PL009</verAplic><cStat>{code}</cStat><xMotivo>{message}</xMotivo>"
        f"<UF>SP</UF><CNPJ>{ISSUER_TAX_ID}</CNPJ>{record}"
        "</infCons></retConsCad>",
        wsdl="CadConsultaCadastro4",
    )


def protocol_response(protocol: str | None = EMISSION_PROTOCOL, code: str = "100") -> str:
    prot = (
        f'<protNFe versao="4.00"><infProt><nProt>{protocol}</nProt></infProt></protNFe>'
        if protocol
        else ""
    )
    return soap_response(
        f'<retConsSitNFe xmlns="{NFE}" versao="4.00">'
        f"<tpAmb>2</tpAmb><cStat>{code}</cStat><xMotivo>Autorizado o uso da NF-e</xMotivo>"
        f"{prot}</retConsSitNFe>",
        wsdl="NFeConsultaProtocolo4",
    )


def soap_fault(reason: str = "Server was unable to process request") -> str:
    return (
        f'<soap:Envelope xmlns:soap="{SOAP_ENV}"><soap:Body><soap:Fault>'
        "<soap:Code><soap:Value>soap:Receiver</soap:Value></soap:Code>"
        f'<soap:Reason><soap:Text xml:lang="en">{reason}</soap:Text></soap:Reason>'
        "</soap:Fault></soap:Body></soap:Envelope>"
    )


class FakeTransport:
    """
    Scripted Transport.  Each entry is a response body or an exception to
    raise; the last entry repeats once the script runs out.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.calls: list[dict] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def post(self, url, body, *, soap_action, timeout, client_cert=None):
        self.calls.append(
            {
                "url": url,
                "body": body,
                "soap_action": soap_action,
                "timeout": timeout,
                "client_cert": client_cert,
            }
        )
        index = min(len(self.calls), len(self.script)) - 1
        outcome = self.script[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return TransportResponse(status_code=200, body=outcome)



# =============================================================================
# Signing credentials
# =============================================================================


def build_certificate(
    key: rsa.RSAPrivateKey,
    not_before: datetime = datetime(2023, 1, 1, tzinfo=timezone.utc),
    not_after: datetime = datetime(2030, 1, 1, tzinfo=timezone.utc),
) -> x509.Certificate:
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "BR"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "EMPRESA TESTE LTDA"),
            x509.NameAttribute(NameOID.COMMON_NAME, f"EMPRESA TESTE LTDA:{ISSUER_TAX_ID}"),
        ]
    )
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )


def write_pkcs12(path, key, certificate, password: bytes | None) -> str:
    encryption = (
        serialization.BestAvailableEncryption(password)
        if password
        else serialization.NoEncryption()
    )
    path.write_bytes(
        pkcs12.serialize_key_and_certificates(
            b"fiscal-test", key, certificate, None, encryption
        )
    )
    return str(path)


class FakeCertificateStore:
    """CertificateStore yielding fixed credentials and counting scopes."""

    def __init__(self, credentials: SigningCredentials, error: Exception | None = None):
        self.credentials = credentials
        self.error = error
        self.acquired: list[UUID] = []
        self.released = 0

    @contextmanager
    def acquire(self, company_id):
        if self.error is not None:
            raise self.error
        self.acquired.append(company_id)
        try:
            yield self.credentials
        finally:
            self.released += 1


