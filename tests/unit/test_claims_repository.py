"""
SQL Claim Repository Tests.
Statement shape of the conditional writes and error translation, against a
mocked AsyncSession compiled with the PostgreSQL dialect.
"""

from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError

from claim_adjudication.core.enums import ClaimStatus
from claim_adjudication.schemas.claim import ClaimFilters, ClaimListQuery
from claim_adjudication.services.claims_repository import (
    SqlClaimRepository,
    build_bulk_transition_statement,
    build_filter_conditions,
)
from claim_adjudication.utils.errors import DependencyError
from tests.fakes import NOW, make_claim


def _sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


def _result(**attrs) -> MagicMock:
    result = MagicMock()
    for name, value in attrs.items():
        setattr(result, name, value)
    return result


class TestBulkTransitionStatement:
    """Tests for the single conditional UPDATE used by bulk transitions."""

    def test_updates_only_pending_rows(self):
        sql = _sql(
            build_bulk_transition_statement(
                [uuid4(), uuid4()], ClaimStatus.PENDING, ClaimStatus.DENIED, {"processedBy": "a"}, NOW
            )
        )

        assert sql.startswith("UPDATE claims SET")
        assert "claims.id IN" in sql
        assert "claims.status =" in sql.split("WHERE", 1)[1]
        assert "is_fraudulent" not in sql

    def test_approval_excludes_fraudulent_rows(self):
        sql = _sql(
            build_bulk_transition_statement(
                [uuid4()], ClaimStatus.PENDING, ClaimStatus.APPROVED, {"processedBy": "a"}, NOW
            )
        )

        assert "claims.is_fraudulent IS false" in sql

    def test_merges_stamp_and_bumps_version(self):
        sql = _sql(
            build_bulk_transition_statement(
                [uuid4()], ClaimStatus.PENDING, ClaimStatus.DENIED, {"notes": "n"}, NOW
            )
        )

        assert "coalesce(claims.fraud_check_details" in sql
        assert "||" in sql
        assert "claims.version +" in sql


class TestFilterConditions:
    """Tests for listing filters."""

    def test_no_filters(self):
        assert build_filter_conditions(ClaimFilters()) == []

    def test_every_filter_adds_a_condition(self):
        filters = ClaimFilters(
            status=ClaimStatus.PENDING,
            patient_id="p1",
            created_by="user-1",
            start_date=NOW,
            end_date=NOW,
            min_amount=Decimal("1"),
            max_amount=Decimal("10"),
            is_fraudulent=False,
            search="abc",
        )

        assert len(build_filter_conditions(filters)) == 9

    def test_search_matches_id_or_notes(self):
        (condition,) = build_filter_conditions(ClaimFilters(search="  flu "))
        sql = _sql(condition)

        assert "CAST(claims.id AS VARCHAR) ILIKE" in sql
        assert "claims.notes ILIKE" in sql

    def test_blank_search_is_ignored(self):
        assert build_filter_conditions(ClaimFilters(search="   ")) == []


class TestSqlClaimRepository:
    """Tests for repository reads and writes against a mocked session."""

    @pytest.mark.asyncio
    async def test_get_missing_claim(self, mock_db_session):
        mock_db_session.execute.return_value = _result(
            scalar_one_or_none=MagicMock(return_value=None)
        )
        repository = SqlClaimRepository(mock_db_session)

        assert await repository.get(uuid4()) is None

    @pytest.mark.asyncio
    async def test_add_stores_camel_case_details(self, mock_db_session):
        repository = SqlClaimRepository(mock_db_session)
        claim = make_claim()

        stored = await repository.add(claim)

        row = mock_db_session.add.call_args[0][0]
        assert row.fraud_check_details == {"isFraudulent": False, "reasons": [], "riskScore": 0.0}
        assert stored == claim
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_conditional_update_checks_version_and_status(self, mock_db_session):
        mock_db_session.execute.return_value = _result(
            scalar_one_or_none=MagicMock(return_value=None)
        )
        repository = SqlClaimRepository(mock_db_session)

        result = await repository.update_if_unchanged(
            uuid4(),
            3,
            {"status": ClaimStatus.APPROVED},
            updated_at=NOW,
            expected_status=ClaimStatus.PENDING,
        )

        assert result is None
        sql = _sql(mock_db_session.execute.call_args[0][0])
        where = sql.split("WHERE", 1)[1]
        assert "claims.version =" in where
        assert "claims.status =" in where
        assert "RETURNING" in sql

    @pytest.mark.asyncio
    async def test_bulk_transition_returns_rowcount(self, mock_db_session):
        mock_db_session.execute.return_value = _result(rowcount=2)
        repository = SqlClaimRepository(mock_db_session)

        count = await repository.bulk_transition(
            [uuid4(), uuid4(), uuid4()], ClaimStatus.PENDING, ClaimStatus.DENIED, {}, NOW
        )

        assert count == 2
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bulk_transition_without_ids_is_a_noop(self, mock_db_session):
        repository = SqlClaimRepository(mock_db_session)

        assert await repository.bulk_transition([], ClaimStatus.PENDING, ClaimStatus.DENIED, {}, NOW) == 0
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stats_maps_aggregate_row(self, mock_db_session):
        mock_db_session.execute.return_value = _result(
            one=MagicMock(return_value=(5, 2, 1, 1, 1, 1, Decimal("750.00")))
        )
        repository = SqlClaimRepository(mock_db_session)

        stats = await repository.stats(created_by="user-1")

        assert stats.total_claims == 5
        assert stats.pending_claims == 2
        assert stats.paid_claims == 1
        assert stats.total_amount == Decimal("750.00")

    @pytest.mark.asyncio
    async def test_database_errors_become_dependency_errors(self, mock_db_session):
        mock_db_session.execute.side_effect = SQLAlchemyError("connection reset")
        repository = SqlClaimRepository(mock_db_session)

        with pytest.raises(DependencyError) as exc_info:
            await repository.list(ClaimListQuery())

        assert exc_info.value.dependency == "database"
        mock_db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_errors_become_dependency_errors(self, mock_db_session):
        mock_db_session.commit.side_effect = SQLAlchemyError("deadlock")
        repository = SqlClaimRepository(mock_db_session)

        with pytest.raises(DependencyError):
            await repository.add(make_claim())

        mock_db_session.rollback.assert_awaited_once()
