"""
Fraud Risk Assessment Services.

Rule-based scoring of proposed claims against the patient's medical record
and recent claim history.
"""

from claim_adjudication.services.fraud.risk_engine import (
    ClaimHistorySource,
    MedicalRecordSource,
    RiskEngine,
)
from claim_adjudication.services.fraud.rules import (
    FraudReason,
    FraudRuleSet,
    get_fraud_rules,
)

__all__ = [
    # Risk Engine
    "RiskEngine",
    "ClaimHistorySource",
    "MedicalRecordSource",
    # Rules
    "FraudReason",
    "FraudRuleSet",
    "get_fraud_rules",
]
