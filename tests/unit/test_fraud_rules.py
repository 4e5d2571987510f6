"""
Fraud Rule Table Tests.
"""

from decimal import Decimal

import pytest

from claim_adjudication.services.fraud import FraudRuleSet, get_fraud_rules
from claim_adjudication.services.fraud.rules import FraudReason


class TestDefaults:
    """Default tables and weights."""

    def test_default_tables(self):
        rules = FraudRuleSet()

        assert rules.procedure_diagnosis_pairs["99213"] == frozenset({"I10", "E11"})
        assert rules.procedure_diagnosis_pairs["J1100"] == frozenset({"M25.5"})
        assert rules.procedure_conditions["99213"] == ("hypertension", "diabetes")
        assert "99214" not in rules.procedure_conditions

    def test_default_weights(self):
        rules = FraudRuleSet()

        assert rules.lookback_days == 90
        assert rules.fraud_threshold == 0.5
        assert rules.amount_outlier_multiplier == Decimal("3")
        assert rules.frequency_threshold == 10

    def test_reason_strings(self):
        assert FraudReason.HIGH_AMOUNT.value == "Unusually high claim amount"
        assert FraudReason.UNSUPPORTED_BY_HISTORY.value == (
            "Procedures without related conditions in medical record"
        )


class TestYamlLoading:
    """Rule sets loaded from YAML files."""

    def test_overrides_and_defaults(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(
            "fraud_threshold: 0.7\n"
            "procedure_conditions:\n"
            "  '97110': ['Back Pain', 'Injury']\n",
            encoding="utf-8",
        )

        rules = FraudRuleSet.from_yaml(path)

        assert rules.fraud_threshold == 0.7
        assert rules.procedure_conditions == {"97110": ("back pain", "injury")}
        assert rules.frequency_weight == 0.20
        assert "99213" in rules.procedure_diagnosis_pairs

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert FraudRuleSet.from_yaml(path) == FraudRuleSet()

    def test_invalid_values_are_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("lookback_days: 0\n", encoding="utf-8")

        with pytest.raises(ValueError):
            FraudRuleSet.from_yaml(path)

    def test_get_fraud_rules_is_cached_per_file(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("frequency_threshold: 4\n", encoding="utf-8")

        first = get_fraud_rules(str(path))

        assert first.frequency_threshold == 4
        assert get_fraud_rules(str(path)) is first
