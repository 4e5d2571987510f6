"""
Fraud Assessment API Endpoints.

Pre-submission fraud warnings: scores a proposed claim without storing it.
"""

from fastapi import APIRouter, Depends

from claim_adjudication.api.deps import get_claim_lifecycle, get_principal
from claim_adjudication.api.middleware import principal_rate_limit
from claim_adjudication.schemas.fraud import FraudAssessment, FraudAssessmentRequest
from claim_adjudication.schemas.principal import Principal
from claim_adjudication.services.claim_lifecycle import ClaimLifecycleService

router = APIRouter(
    prefix="/api/v1/fraud",
    tags=["fraud"],
    dependencies=[Depends(principal_rate_limit)],
)


@router.post(
    "/assess",
    response_model=FraudAssessment,
    summary="Assess fraud risk of a proposed claim",
)
async def assess_fraud(
    data: FraudAssessmentRequest,
    principal: Principal = Depends(get_principal),  # noqa: ARG001
    lifecycle: ClaimLifecycleService = Depends(get_claim_lifecycle),
) -> FraudAssessment:
    return await lifecycle.assess_fraud(
        data.patient_id, data.amount, data.procedure_codes, data.diagnosis_codes
    )
