"""
Claims API Endpoints.

Provides:
- Claim creation and field edits
- Claim listing, lookup and statistics
- Single and bulk status transitions

Routes only translate HTTP to the claim lifecycle service; adjudication
errors are mapped to responses by the application's exception handler.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from claim_adjudication.api.config import settings
from claim_adjudication.api.deps import get_claim_lifecycle, get_principal
from claim_adjudication.api.middleware import principal_rate_limit
from claim_adjudication.core.enums import ClaimSortField, ClaimStatus, SortDirection
from claim_adjudication.schemas.claim import (
    BulkTransitionRequest,
    BulkTransitionResult,
    ClaimCreate,
    ClaimFilters,
    ClaimListQuery,
    ClaimListResponse,
    ClaimRecord,
    ClaimStats,
    ClaimUpdate,
    StatusTransitionRequest,
)
from claim_adjudication.schemas.principal import Principal
from claim_adjudication.services.claim_lifecycle import ClaimLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/claims",
    tags=["claims"],
    dependencies=[Depends(principal_rate_limit)],
)


@router.post(
    "",
    response_model=ClaimRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Create claim",
)
async def create_claim(
    data: ClaimCreate,
    principal: Principal = Depends(get_principal),
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> ClaimRecord:
    """
    Create a claim.

    The claim is assessed for fraud on creation and stored DENIED when the
    assessment flags it.
    """
    return await lifecycle.create_claim(data, principal)


@router.get(
    "",
    response_model=ClaimListResponse,
    summary="List claims",
)
async def list_claims(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    status_filter: Optional[ClaimStatus] = Query(None, alias="status"),
    patient_id: Optional[str] = Query(None),
    created_by: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    min_amount: Optional[Decimal] = Query(None, ge=0),
    max_amount: Optional[Decimal] = Query(None, ge=0),
    is_fraudulent: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    sort_by: ClaimSortField = Query(ClaimSortField.CREATED_AT),
    sort_order: SortDirection = Query(SortDirection.DESC),
    principal: Principal = Depends(get_principal),
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> ClaimListResponse:
    """List claims visible to the caller. Non-admins only see their own claims."""
    query = ClaimListQuery(
        filters=ClaimFilters(
            status=status_filter,
            patient_id=patient_id,
            created_by=created_by,
            start_date=start_date,
            end_date=end_date,
            min_amount=min_amount,
            max_amount=max_amount,
            is_fraudulent=is_fraudulent,
            search=search,
        ),
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await lifecycle.list_claims(query, principal)


@router.get(
    "/stats",
    response_model=ClaimStats,
    summary="Claim statistics",
)
async def get_claim_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    principal: Principal = Depends(get_principal),
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> ClaimStats:
    return await lifecycle.get_claim_stats(principal, start_date, end_date)


@router.post(
    "/bulk-transition",
    response_model=BulkTransitionResult,
    summary="Bulk status transition",
)
async def bulk_transition(
    data: BulkTransitionRequest,
    principal: Principal = Depends(get_principal),
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> BulkTransitionResult:
    """
    Approve or deny many PENDING claims at once (admin only).

    Claims that are no longer PENDING are skipped; `updated_count` reports
    how many were actually transitioned.
    """
    return await lifecycle.bulk_transition(
        data.claim_ids, data.status, principal, notes=data.notes
    )


@router.get(
    "/{claim_id}",
    response_model=ClaimRecord,
    summary="Get claim",
)
async def get_claim(
    claim_id: UUID,
    principal: Principal = Depends(get_principal),
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> ClaimRecord:
    return await lifecycle.get_claim(claim_id, principal)


@router.patch(
    "/{claim_id}",
    response_model=ClaimRecord,
    summary="Update claim",
)
async def update_claim(
    claim_id: UUID,
    data: ClaimUpdate,
    principal: Principal = Depends(get_principal),
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> ClaimRecord:
    """Edit amount, codes or notes of a PENDING claim."""
    return await lifecycle.update_claim(claim_id, data, principal)


@router.post(
    "/{claim_id}/transition",
    response_model=ClaimRecord,
    summary="Transition claim status",
)
async def transition_claim(
    claim_id: UUID,
    data: StatusTransitionRequest,
    principal: Principal = Depends(get_principal),
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> ClaimRecord:
    """Approve (admin only) or deny a PENDING claim."""
    return await lifecycle.transition_status(
        claim_id, data.status, principal, reason=data.reason, notes=data.notes
    )
