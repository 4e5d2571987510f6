"""
Pydantic Schemas for Claims Management.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from claim_adjudication.core.enums import ClaimSortField, ClaimStatus, SortDirection
from claim_adjudication.schemas.fraud import FraudCheckDetails


def _strip_codes(value: list[str]) -> list[str]:
    return [code.strip() for code in value]


CodeList = Annotated[list[str], AfterValidator(_strip_codes)]


# =============================================================================
# Claim Record
# =============================================================================


class ClaimRecord(BaseModel):
    """Persisted claim as seen by the service layer and API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    patient_id: str
    amount: Decimal
    procedure_codes: list[str]
    diagnosis_codes: list[str]
    notes: Optional[str] = None
    status: ClaimStatus
    is_fraudulent: bool = False
    fraud_check_details: Optional[FraudCheckDetails] = None
    created_by: str
    version: int = 1
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Mutation Schemas
# =============================================================================


class ClaimCreate(BaseModel):
    """
    Schema for creating a claim.

    Business validation (positive amount, non-empty code lists) is enforced by
    the claim lifecycle so that the same rules apply to every caller.
    """

    patient_id: str = Field(..., description="Patient reference")
    amount: Decimal = Field(..., description="Claimed amount")
    procedure_codes: CodeList = Field(..., description="Procedure codes (CPT/HCPCS)")
    diagnosis_codes: CodeList = Field(..., description="Diagnosis codes (ICD-10)")
    notes: Optional[str] = Field(None, max_length=2000)


class ClaimUpdate(BaseModel):
    """Partial edit of the mutable claim fields. Status is not settable here."""

    model_config = ConfigDict(extra="forbid")

    amount: Optional[Decimal] = None
    procedure_codes: Optional[CodeList] = None
    diagnosis_codes: Optional[CodeList] = None
    notes: Optional[str] = Field(None, max_length=2000)


class StatusTransitionRequest(BaseModel):
    """Request to move a single claim out of PENDING."""

    status: ClaimStatus
    reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=2000)


class BulkTransitionRequest(BaseModel):
    """Request to transition many PENDING claims at once."""

    claim_ids: list[UUID]
    status: ClaimStatus
    notes: Optional[str] = Field(None, max_length=2000)


class BulkTransitionResult(BaseModel):
    """Number of rows actually transitioned."""

    updated_count: int = Field(ge=0)


# =============================================================================
# Query Schemas
# =============================================================================


class ClaimFilters(BaseModel):
    """Filters that narrow a claim listing."""

    status: Optional[ClaimStatus] = None
    patient_id: Optional[str] = None
    created_by: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    is_fraudulent: Optional[bool] = None
    search: Optional[str] = Field(None, max_length=200)

    @field_validator("search")
    @classmethod
    def normalize_search(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ClaimListQuery(BaseModel):
    """Filters, ordering and pagination of a claim listing."""

    filters: ClaimFilters = Field(default_factory=ClaimFilters)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    sort_by: ClaimSortField = ClaimSortField.CREATED_AT
    sort_order: SortDirection = SortDirection.DESC

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class ClaimListResponse(BaseModel):
    """Paginated claim list response."""

    items: list[ClaimRecord]
    total: int
    page: int
    limit: int
    total_pages: int


class ClaimStats(BaseModel):
    """Aggregate claim counts and amounts."""

    total_claims: int = 0
    pending_claims: int = 0
    approved_claims: int = 0
    denied_claims: int = 0
    paid_claims: int = 0
    fraudulent_claims: int = 0
    total_amount: Decimal = Decimal("0")
