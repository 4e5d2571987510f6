"""
Pydantic Schemas for Fraud Risk Assessment.

`FraudAssessment` is the value object produced by the risk engine.
`FraudCheckDetails` is its persisted form embedded in a claim, extended with
the processing stamps written by status transitions. It is serialized with
camelCase keys to keep the stored JSON shape stable.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConditionStatus(str, Enum):
    """Status of a condition in the patient's medical record."""

    ACTIVE = "active"
    RESOLVED = "resolved"


class MedicalCondition(BaseModel):
    """A single condition from the medical history store."""

    name: str
    status: ConditionStatus = ConditionStatus.ACTIVE


class MedicalRecord(BaseModel):
    """Read-only view of a patient's medical record."""

    patient_id: str
    conditions: list[MedicalCondition] = Field(default_factory=list)

    @property
    def condition_names(self) -> list[str]:
        return [c.name.lower() for c in self.conditions]


class FraudAssessment(BaseModel):
    """Result of a fraud risk evaluation."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    is_fraudulent: bool
    reasons: list[str] = Field(default_factory=list)
    risk_score: float = Field(ge=0.0)


class FraudCheckDetails(BaseModel):
    """
    Last fraud assessment of a claim plus processing stamps.

    Only the risk engine and the claim lifecycle populate this structure;
    callers never supply it directly.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_fraudulent: bool
    reasons: list[str] = Field(default_factory=list)
    risk_score: float = Field(ge=0.0)
    evaluated_at: Optional[datetime] = None
    evaluated_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_assessment(
        cls,
        assessment: FraudAssessment,
        evaluated_by: str,
        evaluated_at: datetime,
    ) -> "FraudCheckDetails":
        return cls(
            is_fraudulent=assessment.is_fraudulent,
            reasons=list(assessment.reasons),
            risk_score=assessment.risk_score,
            evaluated_at=evaluated_at,
            evaluated_by=evaluated_by,
        )

    def stamp_processed(
        self,
        processed_by: str,
        processed_at: datetime,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> "FraudCheckDetails":
        """Return a copy carrying the processing stamp of a status transition."""
        return self.model_copy(
            update={
                "processed_at": processed_at,
                "processed_by": processed_by,
                "reason": reason,
                "notes": notes,
            }
        )

    def to_storage(self) -> dict:
        """JSON-compatible camelCase dict for the persisted column."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FraudAssessmentRequest(BaseModel):
    """Input for a pre-submission fraud assessment."""

    patient_id: str = Field(..., min_length=1)
    amount: Decimal
    procedure_codes: list[str]
    diagnosis_codes: list[str]
