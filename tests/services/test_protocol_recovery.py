"""
Tests for fiscal_kernel.services.protocol_recovery.

Tier order, legacy path probing, additive write-back, and live-query
backfill of jurisdiction and environment.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from fiscal_kernel.exceptions import CertificateNotConfiguredError, TransportError
from fiscal_kernel.models.fiscal_emission import Environment, FiscalEmission
from fiscal_kernel.models.reference import CompanySettings, LegacyEmissionRecord
from fiscal_kernel.services.protocol_recovery import (
    LEGACY_PROTOCOL_PATHS,
    ProtocolRecoveryResolver,
    extract_legacy_protocol,
    read_protocol_value,
    resolve_authority_target,
)
from tests.support import (
    COMPANY_ID,
    EMISSION_PROTOCOL,
    FakeCertificateStore,
    OTHER_COMPANY_ID,
    make_access_key,
    protocol_response,
)

LEGACY_PROTOCOL = "135230000777777"


@pytest.fixture
def build_resolver(session, make_client, certificate_store):
    def _build(*script, store=None):
        client, transport = make_client(*(script or (protocol_response(),)))
        resolver = ProtocolRecoveryResolver.default_sources(
            session, client, store or certificate_store
        )
        return resolver, transport

    return _build


def _legacy(session, access_key, details, issued_at=None):
    record = LegacyEmissionRecord(
        company_id=COMPANY_ID,
        access_key=access_key,
        status="authorized",
        issued_at=issued_at,
        details=details,
    )
    session.add(record)
    session.commit()
    return record


# =============================================================================
# Legacy probing
# =============================================================================


class TestLegacyProbing:
    @pytest.mark.parametrize(
        "details",
        [
            {"protNFe": {"infProt": {"nProt": LEGACY_PROTOCOL}}},
            {"retEvento": {"infEvento": {"nProt": LEGACY_PROTOCOL}}},
            {"authorization": {"nProt": LEGACY_PROTOCOL}},
            {"nProt": LEGACY_PROTOCOL},
            {"sefaz": {"nProt": LEGACY_PROTOCOL}},
            {"protCons": {"nProt": LEGACY_PROTOCOL}},
            {"infProt": {"nProt": LEGACY_PROTOCOL}},
        ],
    )
    def test_each_known_path(self, details):
        assert extract_legacy_protocol(details) == LEGACY_PROTOCOL

    def test_path_order_decides(self):
        details = {"nProt": "2", "protNFe": {"infProt": {"nProt": "1"}}}
        assert extract_legacy_protocol(details) == "1"

    def test_numeric_values_are_accepted(self):
        assert extract_legacy_protocol({"nProt": 135230000777777}) == LEGACY_PROTOCOL

    def test_json_text_details(self):
        assert extract_legacy_protocol('{"sefaz": {"nProt": " 42 "}}') == "42"

    @pytest.mark.parametrize(
        "details",
        [None, "not json", [], {"nProt": ""}, {"nProt": True}, {"nProt": {"x": 1}}, {"other": 1}],
    )
    def test_nothing_usable(self, details):
        assert extract_legacy_protocol(details) is None

    def test_read_protocol_value(self):
        assert read_protocol_value("  123 ") == "123"
        assert read_protocol_value(12.0) == "12"
        assert read_protocol_value(12.5) is None
        assert read_protocol_value(False) is None

    def test_seven_paths(self):
        assert len(LEGACY_PROTOCOL_PATHS) == 7


# =============================================================================
# Resolver tiers
# =============================================================================


class TestResolver:
    def test_canonical_field_makes_no_network_call(self, session, make_emission, build_resolver, certificate_store):
        emission = make_emission(protocol_number=EMISSION_PROTOCOL)
        resolver, transport = build_resolver()

        assert resolver.resolve(emission.id, COMPANY_ID) == EMISSION_PROTOCOL
        assert transport.call_count == 0
        assert certificate_store.acquired == []

    def test_archived_xml_heals_canonical_field(self, session, make_emission, build_resolver):
        emission = make_emission(
            protocol_number=None,
            authorized_xml=(
                '<nfeProc xmlns="http://www.portalfiscal.inf.br/nfe"><protNFe><infProt>'
                "<nProt>135240000011111</nProt></infProt></protNFe></nfeProc>"
            ),
        )
        resolver, transport = build_resolver()

        assert resolver.resolve_for(emission) == "135240000011111"
        assert transport.call_count == 0
        session.commit()
        session.expire_all()
        assert session.get(FiscalEmission, emission.id).protocol_number == "135240000011111"

    def test_most_recent_legacy_record_wins(self, session, make_emission, build_resolver):
        emission = make_emission(protocol_number=None)
        _legacy(session, emission.access_key, {"nProt": "111"}, datetime(2023, 1, 1, tzinfo=timezone.utc))
        _legacy(session, emission.access_key, {"nProt": "222"}, datetime(2024, 1, 1, tzinfo=timezone.utc))
        resolver, transport = build_resolver()

        assert resolver.resolve_for(emission) == "222"
        assert emission.protocol_number == "222"
        assert transport.call_count == 0

    def test_live_query_backfills_target(self, session, make_emission, build_resolver, certificate_store):
        emission = make_emission(
            protocol_number=None,
            jurisdiction=None,
            environment=None,
            access_key=make_access_key(state_code="31"),
        )
        session.add(CompanySettings(company_id=COMPANY_ID, environment="production"))
        session.commit()
        resolver, transport = build_resolver(protocol_response("135240000022222"))

        assert resolver.resolve_for(emission) == "135240000022222"

        assert transport.call_count == 1
        assert transport.calls[0]["url"] == (
            "https://nfe.fazenda.mg.gov.br/nfe2/services/NFeConsultaProtocolo4"
        )
        assert certificate_store.acquired == [COMPANY_ID]
        assert certificate_store.released == 1
        assert emission.protocol_number == "135240000022222"
        assert emission.jurisdiction == "MG"
        assert emission.environment == "production"

    def test_unresolved_returns_none(self, session, make_emission, build_resolver, captured_logs):
        emission = make_emission(protocol_number=None)
        resolver, transport = build_resolver(protocol_response(None, code="217"))

        assert resolver.resolve_for(emission) is None
        assert transport.call_count == 1
        assert emission.protocol_number is None
        assert any(r["message"] == "protocol_unresolved" for r in captured_logs())

    def test_unknown_jurisdiction_skips_live_query(self, session, make_emission, build_resolver):
        emission = make_emission(
            protocol_number=None,
            jurisdiction=None,
            access_key=make_access_key(state_code="99"),
        )
        resolver, transport = build_resolver()

        assert resolver.resolve_for(emission) is None
        assert transport.call_count == 0

    def test_unsupported_jurisdiction_is_not_found(self, session, make_emission, build_resolver):
        emission = make_emission(protocol_number=None, jurisdiction="AM")
        resolver, transport = build_resolver()

        assert resolver.resolve_for(emission) is None
        assert transport.call_count == 0

    def test_transport_failure_propagates(self, session, make_emission, build_resolver):
        emission = make_emission(protocol_number=None)
        resolver, transport = build_resolver(TransportError("down"))

        with pytest.raises(TransportError):
            resolver.resolve_for(emission)
        assert transport.call_count == 3

    def test_certificate_failure_propagates(self, session, make_emission, build_resolver, credentials):
        emission = make_emission(protocol_number=None)
        store = FakeCertificateStore(
            credentials, error=CertificateNotConfiguredError(str(COMPANY_ID), "no path")
        )
        resolver, transport = build_resolver(store=store)

        with pytest.raises(CertificateNotConfiguredError):
            resolver.resolve_for(emission)
        assert transport.call_count == 0

    def test_missing_emission(self, session, build_resolver):
        resolver, _ = build_resolver()
        assert resolver.resolve(uuid4()) is None

    def test_other_tenant_is_not_visible(self, session, make_emission, build_resolver):
        emission = make_emission()
        resolver, _ = build_resolver()
        assert resolver.resolve(emission.id, OTHER_COMPANY_ID) is None


def test_resolve_authority_target_defaults(session, make_emission):
    emission = make_emission(
        jurisdiction=None,
        environment=None,
        access_key=make_access_key(state_code="99"),
    )
    session.add(CompanySettings(company_id=COMPANY_ID, default_jurisdiction="MG"))
    session.commit()

    assert resolve_authority_target(session, emission) == ("MG", Environment.STAGING)


def test_resolve_authority_target_prefers_access_key_state(session, make_emission):
    emission = make_emission(
        jurisdiction=None,
        environment=None,
        access_key=make_access_key(state_code="31"),
    )
    session.add(CompanySettings(company_id=COMPANY_ID, default_jurisdiction="SP"))
    session.commit()

    assert resolve_authority_target(session, emission) == ("MG", Environment.STAGING)


def test_live_query_uses_access_key_state_over_company_default(
    session, make_emission, build_resolver
):
    emission = make_emission(
        protocol_number=None,
        jurisdiction=None,
        access_key=make_access_key(state_code="31"),
    )
    session.add(CompanySettings(company_id=COMPANY_ID, default_jurisdiction="SP"))
    session.commit()
    resolver, transport = build_resolver(protocol_response("135240000033333"))

    assert resolver.resolve_for(emission) == "135240000033333"
    assert "fazenda.mg.gov.br" in transport.calls[0]["url"]
    assert emission.jurisdiction == "MG"
