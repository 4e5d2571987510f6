"""
Claim Repository.

Provides:
- Repository contract used by the claim lifecycle and risk engine
- SQLAlchemy implementation over PostgreSQL

The conditional writes (`update_if_unchanged`, `bulk_transition`) are the
only mutual exclusion for claim state: each is a single UPDATE guarded by
the expected version or status, so concurrent writers cannot overwrite each
other.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import String, and_, case, cast, func, or_, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from claim_adjudication.core.enums import ClaimSortField, ClaimStatus, SortDirection
from claim_adjudication.models.claim import Claim
from claim_adjudication.schemas.claim import (
    ClaimFilters,
    ClaimListQuery,
    ClaimRecord,
    ClaimStats,
)
from claim_adjudication.schemas.fraud import FraudCheckDetails
from claim_adjudication.utils.errors import DependencyError

logger = logging.getLogger(__name__)


# =============================================================================
# Repository Contract
# =============================================================================


class ClaimRepository(ABC):
    """Persistence contract for claims."""

    @abstractmethod
    async def get(self, claim_id: UUID) -> Optional[ClaimRecord]:
        """Get a claim by id."""

    @abstractmethod
    async def get_many(self, claim_ids: Sequence[UUID]) -> list[ClaimRecord]:
        """Get the claims that exist among `claim_ids`."""

    @abstractmethod
    async def add(self, claim: ClaimRecord) -> ClaimRecord:
        """Persist a new claim."""

    @abstractmethod
    async def update_if_unchanged(
        self,
        claim_id: UUID,
        expected_version: int,
        changes: dict[str, Any],
        updated_at: datetime,
        expected_status: Optional[ClaimStatus] = None,
    ) -> Optional[ClaimRecord]:
        """
        Apply `changes` only if the claim still has `expected_version` (and
        `expected_status`, when given). Bumps the version.

        Returns:
            The updated claim, or None if the condition no longer holds
        """

    @abstractmethod
    async def bulk_transition(
        self,
        claim_ids: Sequence[UUID],
        expected_status: ClaimStatus,
        new_status: ClaimStatus,
        stamp: dict[str, Any],
        updated_at: datetime,
    ) -> int:
        """
        Atomically transition every listed claim still in `expected_status`.
        `stamp` is merged into each row's fraud check details. Claims that
        would become APPROVED while flagged fraudulent are skipped.

        Returns:
            Number of rows actually updated
        """

    @abstractmethod
    async def recent_for_patient(self, patient_id: str, since: datetime) -> list[ClaimRecord]:
        """Patient's claims created at or after `since`, most recent first."""

    @abstractmethod
    async def list(self, query: ClaimListQuery) -> tuple[list[ClaimRecord], int]:
        """One page of claims matching the query, plus the total match count."""

    @abstractmethod
    async def stats(
        self,
        created_by: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> ClaimStats:
        """Aggregate counts and amounts."""


# =============================================================================
# SQLAlchemy Implementation
# =============================================================================


_SORT_COLUMNS = {
    ClaimSortField.CREATED_AT: Claim.created_at,
    ClaimSortField.UPDATED_AT: Claim.updated_at,
    ClaimSortField.AMOUNT: Claim.amount,
    ClaimSortField.STATUS: Claim.status,
}


def _to_column_values(changes: dict[str, Any]) -> dict[str, Any]:
    values = dict(changes)
    details = values.get("fraud_check_details")
    if isinstance(details, FraudCheckDetails):
        values["fraud_check_details"] = details.to_storage()
    return values


def build_filter_conditions(filters: ClaimFilters) -> list:
    """Translate listing filters into SQL conditions."""
    conditions = []
    if filters.status:
        conditions.append(Claim.status == filters.status)
    if filters.patient_id:
        conditions.append(Claim.patient_id == filters.patient_id)
    if filters.created_by:
        conditions.append(Claim.created_by == filters.created_by)
    if filters.start_date:
        conditions.append(Claim.created_at >= filters.start_date)
    if filters.end_date:
        conditions.append(Claim.created_at <= filters.end_date)
    if filters.min_amount is not None:
        conditions.append(Claim.amount >= filters.min_amount)
    if filters.max_amount is not None:
        conditions.append(Claim.amount <= filters.max_amount)
    if filters.is_fraudulent is not None:
        conditions.append(Claim.is_fraudulent.is_(filters.is_fraudulent))
    if filters.search:
        term = f"%{filters.search}%"
        conditions.append(
            or_(
                cast(Claim.id, String).ilike(term),
                Claim.notes.ilike(term),
            )
        )
    return conditions


def build_bulk_transition_statement(
    claim_ids: Sequence[UUID],
    expected_status: ClaimStatus,
    new_status: ClaimStatus,
    stamp: dict[str, Any],
    updated_at: datetime,
):
    """Single conditional UPDATE for a bulk transition."""
    conditions = [Claim.id.in_(list(claim_ids)), Claim.status == expected_status]
    if new_status == ClaimStatus.APPROVED:
        conditions.append(Claim.is_fraudulent.is_(False))

    merged_details = func.coalesce(
        Claim.fraud_check_details, cast({}, JSONB)
    ).op("||")(cast(stamp, JSONB))

    return (
        update(Claim)
        .where(and_(*conditions))
        .values(
            status=new_status,
            fraud_check_details=merged_details,
            version=Claim.version + 1,
            updated_at=updated_at,
        )
        .execution_options(synchronize_session=False)
    )


class SqlClaimRepository(ClaimRepository):
    """
    Claim repository over an async SQLAlchemy session.

    Writes commit immediately; database errors roll back and surface as
    DependencyError.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _fail(self, operation: str, error: SQLAlchemyError) -> DependencyError:
        await self.session.rollback()
        logger.error(f"Claim repository {operation} failed: {error}")
        return DependencyError(
            f"Claim repository {operation} failed",
            dependency="database",
            original_error=error,
        )

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get(self, claim_id: UUID) -> Optional[ClaimRecord]:
        try:
            result = await self.session.execute(select(Claim).where(Claim.id == claim_id))
        except SQLAlchemyError as e:
            raise await self._fail("get", e) from e
        claim = result.scalar_one_or_none()
        return ClaimRecord.model_validate(claim) if claim else None

    async def get_many(self, claim_ids: Sequence[UUID]) -> list[ClaimRecord]:
        if not claim_ids:
            return []
        try:
            result = await self.session.execute(
                select(Claim).where(Claim.id.in_(list(claim_ids)))
            )
        except SQLAlchemyError as e:
            raise await self._fail("get_many", e) from e
        return [ClaimRecord.model_validate(c) for c in result.scalars().all()]

    async def recent_for_patient(self, patient_id: str, since: datetime) -> list[ClaimRecord]:
        try:
            result = await self.session.execute(
                select(Claim)
                .where(and_(Claim.patient_id == patient_id, Claim.created_at >= since))
                .order_by(Claim.created_at.desc())
            )
        except SQLAlchemyError as e:
            raise await self._fail("recent_for_patient", e) from e
        return [ClaimRecord.model_validate(c) for c in result.scalars().all()]

    async def list(self, query: ClaimListQuery) -> tuple[list[ClaimRecord], int]:
        conditions = build_filter_conditions(query.filters)
        base = select(Claim).where(and_(*conditions)) if conditions else select(Claim)

        column = _SORT_COLUMNS[query.sort_by]
        ordering = column.asc() if query.sort_order == SortDirection.ASC else column.desc()

        try:
            count_query = select(func.count()).select_from(base.subquery())
            total = (await self.session.execute(count_query)).scalar_one()

            result = await self.session.execute(
                base.order_by(ordering, Claim.id).offset(query.offset).limit(query.limit)
            )
        except SQLAlchemyError as e:
            raise await self._fail("list", e) from e

        return [ClaimRecord.model_validate(c) for c in result.scalars().all()], total

    async def stats(
        self,
        created_by: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> ClaimStats:
        filters = ClaimFilters(created_by=created_by, start_date=start_date, end_date=end_date)
        conditions = build_filter_conditions(filters)

        def count_status(status: ClaimStatus):
            return func.count(case((Claim.status == status, 1)))

        query = select(
            func.count(Claim.id),
            count_status(ClaimStatus.PENDING),
            count_status(ClaimStatus.APPROVED),
            count_status(ClaimStatus.DENIED),
            count_status(ClaimStatus.PAID),
            func.count(case((Claim.is_fraudulent.is_(True), 1))),
            func.coalesce(func.sum(Claim.amount), 0),
        )
        if conditions:
            query = query.where(and_(*conditions))

        try:
            row = (await self.session.execute(query)).one()
        except SQLAlchemyError as e:
            raise await self._fail("stats", e) from e

        return ClaimStats(
            total_claims=row[0],
            pending_claims=row[1],
            approved_claims=row[2],
            denied_claims=row[3],
            paid_claims=row[4],
            fraudulent_claims=row[5],
            total_amount=row[6],
        )

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def add(self, claim: ClaimRecord) -> ClaimRecord:
        row = Claim(
            id=claim.id,
            patient_id=claim.patient_id,
            amount=claim.amount,
            procedure_codes=list(claim.procedure_codes),
            diagnosis_codes=list(claim.diagnosis_codes),
            notes=claim.notes,
            status=claim.status,
            is_fraudulent=claim.is_fraudulent,
            fraud_check_details=(
                claim.fraud_check_details.to_storage() if claim.fraud_check_details else None
            ),
            created_by=claim.created_by,
            version=claim.version,
            created_at=claim.created_at,
            updated_at=claim.updated_at,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("add", e) from e

        logger.debug(f"Inserted claim {claim.id}")
        return ClaimRecord.model_validate(row)

    async def update_if_unchanged(
        self,
        claim_id: UUID,
        expected_version: int,
        changes: dict[str, Any],
        updated_at: datetime,
        expected_status: Optional[ClaimStatus] = None,
    ) -> Optional[ClaimRecord]:
        conditions = [Claim.id == claim_id, Claim.version == expected_version]
        if expected_status is not None:
            conditions.append(Claim.status == expected_status)

        statement = (
            update(Claim)
            .where(and_(*conditions))
            .values(
                **_to_column_values(changes),
                version=Claim.version + 1,
                updated_at=updated_at,
            )
            .returning(Claim)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        try:
            result = await self.session.execute(statement)
            row = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("update", e) from e

        return ClaimRecord.model_validate(row) if row else None

    async def bulk_transition(
        self,
        claim_ids: Sequence[UUID],
        expected_status: ClaimStatus,
        new_status: ClaimStatus,
        stamp: dict[str, Any],
        updated_at: datetime,
    ) -> int:
        if not claim_ids:
            return 0
        statement = build_bulk_transition_statement(
            claim_ids, expected_status, new_status, stamp, updated_at
        )
        try:
            result = await self.session.execute(statement)
            await self.session.commit()
        except SQLAlchemyError as e:
            raise await self._fail("bulk_transition", e) from e

        return result.rowcount or 0
