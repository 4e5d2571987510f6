"""
Pydantic schemas for the adjudication core.
"""

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
from claim_adjudication.schemas.fraud import (
    ConditionStatus,
    FraudAssessment,
    FraudAssessmentRequest,
    FraudCheckDetails,
    MedicalCondition,
    MedicalRecord,
)
from claim_adjudication.schemas.principal import Principal

__all__ = [
    # Claims
    "BulkTransitionRequest",
    "BulkTransitionResult",
    "ClaimCreate",
    "ClaimFilters",
    "ClaimListQuery",
    "ClaimListResponse",
    "ClaimRecord",
    "ClaimStats",
    "ClaimUpdate",
    "StatusTransitionRequest",
    # Fraud
    "ConditionStatus",
    "FraudAssessment",
    "FraudAssessmentRequest",
    "FraudCheckDetails",
    "MedicalCondition",
    "MedicalRecord",
    # Principal
    "Principal",
]
