"""
CertificateStore -- scoped acquisition of a tenant's signing credentials.

Responsibility:
    Loads the tenant's PKCS#12 certificate, checks it can sign, and exposes
    it for exactly one ``with`` block.  PEM copies for mutual TLS live in a
    private temporary directory that is removed when the block exits,
    whatever the outcome.

Invariants enforced:
    - Credentials are never cached across acquisitions.
    - The PKCS#12 password is read through a secret resolver by reference;
      it is never stored on the settings row nor logged.

Failure modes:
    - CertificateNotConfiguredError: no settings row, no path, or the
      password reference does not resolve.
    - CertificateInvalidError: unreadable file, wrong password, no private
      key, non-RSA key, or expired certificate.
"""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, ContextManager, Iterator, Protocol
from uuid import UUID

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from sqlalchemy import select
from sqlalchemy.orm import Session

from fiscal_authority.signing import SigningCredentials
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.exceptions import CertificateInvalidError, CertificateNotConfiguredError
from fiscal_kernel.logging_config import get_logger
from fiscal_kernel.models.reference import CompanySettings

logger = get_logger("services.certificate_store")

SecretResolver = Callable[[str], str | None]


class CertificateStore(Protocol):
    def acquire(self, company_id: UUID) -> ContextManager[SigningCredentials]: ...


def environment_secret(name: str) -> str | None:
    """Resolve a secret reference as an environment variable name."""
    return os.environ.get(name)


class Pkcs12CertificateStore:
    """CertificateStore backed by CompanySettings and PKCS#12 files."""

    def __init__(
        self,
        session: Session,
        secret_resolver: SecretResolver = environment_secret,
        clock: Clock | None = None,
    ):
        self.session = session
        self._resolve_secret = secret_resolver
        self._clock = clock or SystemClock()

    def _settings(self, company_id: UUID) -> CompanySettings:
        settings = self.session.scalars(
            select(CompanySettings).where(CompanySettings.company_id == company_id)
        ).first()
        if settings is None or not settings.certificate_path:
            raise CertificateNotConfiguredError(str(company_id), "no certificate path configured")
        return settings

    def _load(self, company_id: UUID) -> tuple[SigningCredentials, rsa.RSAPrivateKey]:
        settings = self._settings(company_id)

        password = None
        if settings.certificate_password_ref:
            password = self._resolve_secret(settings.certificate_password_ref)
            if password is None:
                raise CertificateNotConfiguredError(
                    str(company_id), "certificate password reference does not resolve"
                )

        try:
            data = Path(settings.certificate_path).read_bytes()
        except OSError as exc:
            raise CertificateInvalidError(str(company_id), f"cannot read certificate file: {exc}") from exc

        try:
            key, certificate, _chain = pkcs12.load_key_and_certificates(
                data, password.encode("utf-8") if password else None
            )
        except ValueError as exc:
            raise CertificateInvalidError(
                str(company_id), "cannot decrypt PKCS#12 (wrong password or corrupt file)"
            ) from exc

        if key is None:
            raise CertificateInvalidError(str(company_id), "PKCS#12 has no private key")
        if not isinstance(key, rsa.RSAPrivateKey):
            raise CertificateInvalidError(str(company_id), "private key is not RSA")
        if certificate is None:
            raise CertificateInvalidError(str(company_id), "PKCS#12 has no certificate")
        if certificate.not_valid_after_utc <= self._clock.now():
            raise CertificateInvalidError(
                str(company_id),
                f"certificate expired at {certificate.not_valid_after_utc.isoformat()}",
            )

        return SigningCredentials(certificate=certificate, private_key=key), key

    @contextmanager
    def acquire(self, company_id: UUID) -> Iterator[SigningCredentials]:
        credentials, key = self._load(company_id)
        with tempfile.TemporaryDirectory(prefix="fiscal-cert-") as workdir:
            cert_file = Path(workdir) / "cert.pem"
            key_file = Path(workdir) / "key.pem"
            cert_file.write_bytes(credentials.certificate.public_bytes(serialization.Encoding.PEM))
            key_file.touch(mode=0o600)
            key_file.write_bytes(
                key.private_bytes(
                    serialization.Encoding.PEM,
                    serialization.PrivateFormat.PKCS8,
                    serialization.NoEncryption(),
                )
            )
            logger.info("certificate_acquired", extra={"company_id": str(company_id)})
            try:
                yield SigningCredentials(
                    certificate=credentials.certificate,
                    private_key=key,
                    cert_file=str(cert_file),
                    key_file=str(key_file),
                )
            finally:
                logger.info("certificate_released", extra={"company_id": str(company_id)})
