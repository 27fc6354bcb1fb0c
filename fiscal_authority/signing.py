"""
Enveloped XML signature for event documents.

Responsibility:
    Signs the ``infEvento`` element of an ``envEvento`` document the way the
    authority expects: C14N 1.0 of the referenced element, SHA-1 digest,
    RSA-SHA1 signature, signer certificate embedded as ``X509Certificate``.
    The ``Signature`` element is appended inside ``evento``, right after
    ``infEvento``.

Failure modes:
    - ValueError when the document has no ``infEvento`` with an ``Id``.
"""

import base64
import hashlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from fiscal_authority.envelope import NFE_NAMESPACE

DSIG_NAMESPACE = "http://www.w3.org/2000/09/xmldsig#"
C14N_ALGORITHM = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
ENVELOPED_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
RSA_SHA1_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#rsa-sha1"
SHA1_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#sha1"

INF_EVENTO_END = "</infEvento>"


@dataclass(frozen=True)
class SigningCredentials:
    """
    Decrypted signing material for one submission.

    ``cert_file`` / ``key_file`` point at PEM copies used for mutual TLS; they
    only exist while the owning CertificateStore scope is open.
    """

    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey
    cert_file: str | None = None
    key_file: str | None = None

    @property
    def client_cert(self) -> tuple[str, str] | None:
        if self.cert_file and self.key_file:
            return (self.cert_file, self.key_file)
        return None

    def __repr__(self) -> str:
        return f"<SigningCredentials subject={self.certificate.subject.rfc4514_string()!r}>"


class EventSigner(Protocol):
    def sign(self, xml: str, credentials: SigningCredentials) -> str: ...


def _canonical_inf_evento(xml: str) -> tuple[str, str]:
    """
    Id and C14N form of ``infEvento``.

    The element is cut out of the document text and given the default
    namespace it inherits from ``envEvento``, which is what inclusive C14N
    of that subtree produces.
    """
    start = xml.find("<infEvento")
    end = xml.find(INF_EVENTO_END)
    if start < 0 or end < 0:
        raise ValueError("Document has no infEvento element")
    fragment = xml[start:end + len(INF_EVENTO_END)]
    start_tag = fragment[:fragment.index(">")]
    if "xmlns=" not in start_tag:
        fragment = fragment.replace("<infEvento", f'<infEvento xmlns="{NFE_NAMESPACE}"', 1)

    reference_id = ET.fromstring(fragment).get("Id")
    if not reference_id:
        raise ValueError("infEvento element has no Id attribute")
    return reference_id, ET.canonicalize(xml_data=fragment)


def _signed_info(reference_id: str, digest_value: str) -> str:
    return ET.canonicalize(
        xml_data=(
            f'<SignedInfo xmlns="{DSIG_NAMESPACE}">'
            f'<CanonicalizationMethod Algorithm="{C14N_ALGORITHM}"/>'
            f'<SignatureMethod Algorithm="{RSA_SHA1_ALGORITHM}"/>'
            f'<Reference URI="#{reference_id}">'
            "<Transforms>"
            f'<Transform Algorithm="{ENVELOPED_ALGORITHM}"/>'
            f'<Transform Algorithm="{C14N_ALGORITHM}"/>'
            "</Transforms>"
            f'<DigestMethod Algorithm="{SHA1_ALGORITHM}"/>'
            f"<DigestValue>{digest_value}</DigestValue>"
            "</Reference>"
            "</SignedInfo>"
        )
    )


class XmlEventSigner:
    """Signs ``envEvento`` documents with RSA-SHA1."""

    def sign(self, xml: str, credentials: SigningCredentials) -> str:
        reference_id, canonical = _canonical_inf_evento(xml)
        digest_value = base64.b64encode(hashlib.sha1(canonical.encode("utf-8")).digest()).decode("ascii")

        signed_info = _signed_info(reference_id, digest_value)
        signature = credentials.private_key.sign(
            signed_info.encode("utf-8"),
            padding.PKCS1v15(),
            hashes.SHA1(),
        )
        certificate_b64 = base64.b64encode(
            credentials.certificate.public_bytes(serialization.Encoding.DER)
        ).decode("ascii")

        signature_xml = (
            f'<Signature xmlns="{DSIG_NAMESPACE}">'
            f"{signed_info}"
            f"<SignatureValue>{base64.b64encode(signature).decode('ascii')}</SignatureValue>"
            "<KeyInfo><X509Data>"
            f"<X509Certificate>{certificate_b64}</X509Certificate>"
            "</X509Data></KeyInfo>"
            "</Signature>"
        )

        position = xml.find(INF_EVENTO_END) + len(INF_EVENTO_END)
        return xml[:position] + signature_xml + xml[position:]
