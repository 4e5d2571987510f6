"""
Fraud Rule Tables.

Static clinical tables and heuristic weights used by the risk engine, held
as data so they can be extended or swapped from a YAML file without touching
the scoring algorithm.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from claim_adjudication.api.config import settings


class FraudReason(str, Enum):
    """Reason tags attached to an assessment when a heuristic fires."""

    NO_MEDICAL_RECORD = "No medical record found for patient"
    HIGH_AMOUNT = "Unusually high claim amount"
    HIGH_FREQUENCY = "High frequency of claims"
    DUPLICATE_PROCEDURES = "Duplicate procedures within 90 days"
    CODE_MISMATCH = "Procedure and diagnosis code mismatch"
    UNSUPPORTED_BY_HISTORY = "Procedures without related conditions in medical record"


DEFAULT_PROCEDURE_DIAGNOSIS_PAIRS: dict[str, list[str]] = {
    "99213": ["I10", "E11"],  # Office visit: hypertension, type 2 diabetes
    "99214": ["I10", "E11"],
    "J1100": ["M25.5"],  # Dexamethasone injection: joint pain
}

DEFAULT_PROCEDURE_CONDITIONS: dict[str, list[str]] = {
    "99213": ["hypertension", "diabetes"],
    "J1100": ["joint pain", "arthritis"],
}


class FraudRuleSet(BaseModel):
    """Tunable inputs of the fraud heuristics."""

    lookback_days: int = Field(default=90, gt=0)
    fraud_threshold: float = Field(default=0.5, gt=0.0)

    amount_outlier_multiplier: Decimal = Field(default=Decimal("3"), gt=0)
    amount_outlier_weight: float = Field(default=0.30, ge=0.0)
    frequency_threshold: int = Field(default=10, ge=0)
    frequency_weight: float = Field(default=0.20, ge=0.0)
    duplicate_procedure_weight: float = Field(default=0.25, ge=0.0)
    code_mismatch_weight: float = Field(default=0.25, ge=0.0)
    unsupported_procedure_weight: float = Field(default=0.20, ge=0.0)

    # procedure code -> diagnosis codes clinically valid for it
    procedure_diagnosis_pairs: dict[str, frozenset[str]] = Field(
        default_factory=lambda: {
            code: frozenset(diagnoses)
            for code, diagnoses in DEFAULT_PROCEDURE_DIAGNOSIS_PAIRS.items()
        }
    )
    # procedure code -> condition-name substrings expected to justify it
    procedure_conditions: dict[str, tuple[str, ...]] = Field(
        default_factory=lambda: {
            code: tuple(conditions)
            for code, conditions in DEFAULT_PROCEDURE_CONDITIONS.items()
        }
    )

    @field_validator("procedure_conditions")
    @classmethod
    def lowercase_conditions(cls, v: dict[str, tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
        return {code: tuple(c.lower() for c in conditions) for code, conditions in v.items()}

    @classmethod
    def from_yaml(cls, path: str | Path) -> "FraudRuleSet":
        """
        Load a rule set from YAML. Keys omitted from the file keep their
        defaults; table keys replace the default table entirely.
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)


@lru_cache
def get_fraud_rules(path: Optional[str] = None) -> FraudRuleSet:
    """Get the configured rule set (cached per source file)."""
    path = path or settings.FRAUD_RULES_FILE
    if path:
        return FraudRuleSet.from_yaml(path)
    return FraudRuleSet()
