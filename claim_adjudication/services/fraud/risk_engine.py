"""
Claim Fraud Risk Engine.

Scores a proposed claim against the patient's medical record and trailing
claim history. Each heuristic contributes independently to the risk score;
the claim is flagged when the accumulated score reaches the fraud threshold.

Heuristics:
- Amount outlier: amount above a multiple of the trailing mean
- Frequency: too many claims in the trailing window
- Duplicate procedures: procedure already billed in the window
- Procedure/diagnosis mismatch: no clinically valid diagnosis supplied
- Unsupported by history: no related condition in the medical record

With no claim history the trailing mean is 0, so any positive amount counts
as an outlier. First claims are therefore always scored as high-amount.
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional, Protocol
from uuid import UUID

from claim_adjudication.schemas.claim import ClaimRecord
from claim_adjudication.schemas.fraud import FraudAssessment, MedicalRecord
from claim_adjudication.services.fraud.rules import FraudReason, FraudRuleSet

logger = logging.getLogger(__name__)


class ClaimHistorySource(Protocol):
    """Read access to a patient's recent claims."""

    async def recent_for_patient(
        self, patient_id: str, since: datetime
    ) -> list[ClaimRecord]:
        """Claims created at or after `since`, most recent first."""
        ...


class MedicalRecordSource(Protocol):
    """Read access to the patient medical history store."""

    async def get_medical_record(self, patient_id: str) -> Optional[MedicalRecord]:
        """Return the record, or None when the patient has none."""
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RiskEngine:
    """
    Rule-based fraud risk scoring.

    Deterministic for identical inputs, backing data and clock.
    """

    def __init__(
        self,
        claim_history: ClaimHistorySource,
        medical_records: MedicalRecordSource,
        rules: Optional[FraudRuleSet] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._claim_history = claim_history
        self._medical_records = medical_records
        self._rules = rules or FraudRuleSet()
        self._clock = clock

    @property
    def rules(self) -> FraudRuleSet:
        return self._rules

    async def assess(
        self,
        patient_id: str,
        amount: Decimal,
        procedure_codes: Sequence[str],
        diagnosis_codes: Sequence[str],
        exclude_claim_id: Optional[UUID] = None,
    ) -> FraudAssessment:
        """
        Assess a proposed claim.

        Args:
            patient_id: Patient the claim is for
            amount: Proposed claim amount
            procedure_codes: Proposed procedure codes
            diagnosis_codes: Proposed diagnosis codes
            exclude_claim_id: Claim being re-evaluated, left out of its own history

        Returns:
            FraudAssessment with score and reasons

        Infrastructure errors from either read propagate unchanged.
        """
        since = self._clock() - timedelta(days=self._rules.lookback_days)

        medical_record, history = await asyncio.gather(
            self._medical_records.get_medical_record(patient_id),
            self._claim_history.recent_for_patient(patient_id, since),
        )

        if medical_record is None:
            logger.info(f"No medical record for patient {patient_id}; flagging claim")
            return FraudAssessment(
                is_fraudulent=True,
                reasons=[FraudReason.NO_MEDICAL_RECORD.value],
                risk_score=1.0,
            )

        if exclude_claim_id is not None:
            history = [c for c in history if c.id != exclude_claim_id]

        checks = (
            self._check_amount_outlier(Decimal(amount), history),
            self._check_frequency(history),
            self._check_duplicate_procedures(procedure_codes, history),
            self._check_code_mismatch(procedure_codes, diagnosis_codes),
            self._check_unsupported_procedures(procedure_codes, medical_record),
        )

        reasons: list[str] = []
        risk_score = 0.0
        for fired in checks:
            if fired is None:
                continue
            reason, weight = fired
            if reason.value not in reasons:
                reasons.append(reason.value)
            risk_score += weight

        # Weights are two-decimal constants; rounding drops float noise only
        risk_score = round(risk_score, 6)

        return FraudAssessment(
            is_fraudulent=risk_score >= self._rules.fraud_threshold,
            reasons=reasons,
            risk_score=risk_score,
        )

    # =========================================================================
    # Heuristics
    # =========================================================================

    def _check_amount_outlier(
        self, amount: Decimal, history: list[ClaimRecord]
    ) -> Optional[tuple[FraudReason, float]]:
        mean = (
            sum((c.amount for c in history), Decimal("0")) / len(history)
            if history
            else Decimal("0")
        )
        if amount > mean * self._rules.amount_outlier_multiplier:
            return FraudReason.HIGH_AMOUNT, self._rules.amount_outlier_weight
        return None

    def _check_frequency(
        self, history: list[ClaimRecord]
    ) -> Optional[tuple[FraudReason, float]]:
        if len(history) > self._rules.frequency_threshold:
            return FraudReason.HIGH_FREQUENCY, self._rules.frequency_weight
        return None

    def _check_duplicate_procedures(
        self, procedure_codes: Sequence[str], history: list[ClaimRecord]
    ) -> Optional[tuple[FraudReason, float]]:
        billed = {code for claim in history for code in claim.procedure_codes}
        if any(code in billed for code in procedure_codes):
            return FraudReason.DUPLICATE_PROCEDURES, self._rules.duplicate_procedure_weight
        return None

    def _check_code_mismatch(
        self, procedure_codes: Sequence[str], diagnosis_codes: Sequence[str]
    ) -> Optional[tuple[FraudReason, float]]:
        pairs = self._rules.procedure_diagnosis_pairs
        for code in procedure_codes:
            valid = pairs.get(code)
            # Unmapped procedure codes are unconstrained
            if valid is not None and not any(d in valid for d in diagnosis_codes):
                return FraudReason.CODE_MISMATCH, self._rules.code_mismatch_weight
        return None

    def _check_unsupported_procedures(
        self, procedure_codes: Sequence[str], medical_record: MedicalRecord
    ) -> Optional[tuple[FraudReason, float]]:
        conditions = medical_record.condition_names
        expected_by_code = self._rules.procedure_conditions
        for code in procedure_codes:
            expected = expected_by_code.get(code)
            if expected is None:
                continue
            supported = any(
                fragment in condition for fragment in expected for condition in conditions
            )
            if not supported:
                return (
                    FraudReason.UNSUPPORTED_BY_HISTORY,
                    self._rules.unsupported_procedure_weight,
                )
        return None
