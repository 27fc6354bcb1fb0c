"""
Pytest fixtures for the fiscal kernel test suite.

Provides:
- In-memory SQLite engine (StaticPool) with fresh tables per test
- Deterministic clock and sleeper so retry backoff never blocks
- Authority client over a scripted transport
- Self-signed RSA signing credentials
- Captured structured logs

Helpers shared with test modules live in ``tests/support.py``.
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.orm import Session

from fiscal_authority.client import GovernmentSoapClient
from fiscal_authority.signing import SigningCredentials
from fiscal_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from fiscal_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fiscal_kernel.domain.clock import DeterministicClock
from fiscal_kernel.domain.retry import ClockSleeper
from fiscal_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fiscal_kernel.models.correction_event import CorrectionEvent, CorrectionEventStatus
from fiscal_kernel.models.fiscal_emission import EmissionStatus, FiscalEmission
from tests.support import (
    COMPANY_ID,
    EMISSION_PROTOCOL,
    FakeCertificateStore,
    FakeTransport,
    build_certificate,
    make_access_key,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fiscal_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            assert any(r["message"] == "protocol_resolved" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fiscal_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url("sqlite://")
    yield eng
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Fresh schema and session per test; immutability listeners active."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()
    unregister_immutability_listeners()
    drop_tables()


@pytest.fixture
def make_emission(session):
    def _make(**overrides) -> FiscalEmission:
        values = {
            "company_id": COMPANY_ID,
            "access_key": make_access_key(),
            "status": EmissionStatus.AUTHORIZED.value,
            "jurisdiction": "SP",
            "environment": "staging",
            "protocol_number": EMISSION_PROTOCOL,
        }
        values.update(overrides)
        emission = FiscalEmission(**values)
        session.add(emission)
        session.commit()
        return emission

    return _make


@pytest.fixture
def make_event(session):
    def _make(emission: FiscalEmission, **overrides) -> CorrectionEvent:
        values = {
            "company_id": emission.company_id,
            "emission_id": emission.id,
            "access_key": emission.access_key,
            "sequence": 1,
            "correction_text": "Correcao do CFOP informado no item 3 da nota.",
            "status": CorrectionEventStatus.QUEUED.value,
        }
        values.update(overrides)
        event = CorrectionEvent(**values)
        session.add(event)
        session.commit()
        return event

    return _make


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def clock_sleeper(deterministic_clock) -> ClockSleeper:
    return ClockSleeper(deterministic_clock)


@pytest.fixture
def make_client(clock_sleeper):
    def _make(*script) -> tuple[GovernmentSoapClient, FakeTransport]:
        transport = FakeTransport(*script)
        return GovernmentSoapClient(transport=transport, sleeper=clock_sleeper), transport

    return _make


# =============================================================================
# Signing credentials
# =============================================================================


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signing_certificate(signing_key) -> x509.Certificate:
    return build_certificate(signing_key)


@pytest.fixture(scope="session")
def credentials(signing_key, signing_certificate) -> SigningCredentials:
    return SigningCredentials(certificate=signing_certificate, private_key=signing_key)


@pytest.fixture
def certificate_store(credentials) -> FakeCertificateStore:
    return FakeCertificateStore(credentials)


@pytest.fixture
def actor_id() -> UUID:
    return uuid4()
