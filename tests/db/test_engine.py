"""
Tests for fiscal_kernel.db: session_scope transaction handling, UUID
columns and UTC normalisation of stored timestamps.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
from sqlalchemy import select

from fiscal_kernel.db.base import as_utc
from fiscal_kernel.db.engine import get_engine, session_scope
from fiscal_kernel.models.reference import IssuerOrganization
from tests.support import COMPANY_ID


class TestSessionScope:
    def test_commits_on_exit(self, session):
        with session_scope() as scoped:
            scoped.add(IssuerOrganization(company_id=COMPANY_ID, document_number="12345678000195"))

        stored = session.scalars(select(IssuerOrganization)).one()
        assert stored.company_id == COMPANY_ID
        assert isinstance(stored.id, UUID)

    def test_rolls_back_and_reraises(self, session, captured_logs):
        with pytest.raises(RuntimeError):
            with session_scope() as scoped:
                scoped.add(IssuerOrganization(company_id=COMPANY_ID))
                scoped.flush()
                raise RuntimeError("abort")

        assert session.scalars(select(IssuerOrganization)).all() == []
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


def test_engine_is_sqlite_in_tests(db_engine):
    assert get_engine() is db_engine
    assert db_engine.dialect.name == "sqlite"


class TestAsUtc:
    def test_none(self):
        assert as_utc(None) is None

    def test_naive_taken_as_utc(self):
        assert as_utc(datetime(2024, 1, 15, 12, 0)) == datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_offset_converted(self):
        brt = timezone(timedelta(hours=-3))
        value = as_utc(datetime(2024, 1, 15, 9, 0, tzinfo=brt))
        assert value == datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert value.tzinfo == timezone.utc
