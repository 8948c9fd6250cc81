"""
Tests for RuleSelector - resolving the rule that governs a request.
"""

from typing import List

import pytest

from com_yachtie_consensus.consensus.internal.ConfigurationSnapshot import ConfigurationSnapshot
from com_yachtie_consensus.consensus.internal.ConsensusErrors import NoApplicableRule
from com_yachtie_consensus.consensus.internal.ConsensusTypes import ConsensusRule, RiskLevel
from com_yachtie_consensus.consensus.internal.RuleSelector import RuleSelector


def rule(rule_id: str, module: str, action_type: str, **overrides: object) -> ConsensusRule:
    return ConsensusRule.model_validate(
        {
            "id": rule_id,
            "module": module,
            "action_type": action_type,
            "required_agreement_threshold": 0.5,
            "human_approval_threshold": 0.7,
            "auto_execute_threshold": 0.9,
            **overrides,
        }
    )


def snapshot(rules: List[ConsensusRule]) -> ConfigurationSnapshot:
    return ConfigurationSnapshot(rules=tuple(sorted(rules, key=lambda r: r.id)))


class TestRuleSelector:
    """Test suite for RuleSelector."""

    def test_exact_match_wins_over_wildcard(self) -> None:
        config = snapshot([rule("exact", "maintenance", "approve_payment"), rule("wild", "maintenance", "*")])

        selection = RuleSelector.select(config, "maintenance", "approve_payment")

        assert selection.rule.id == "exact"
        assert selection.matched_by == "exact"

    def test_module_wildcard(self) -> None:
        config = snapshot([rule("wild", "maintenance", "*"), rule("other", "crew", "approve_payment")])

        selection = RuleSelector.select(config, "maintenance", "schedule_service")

        assert selection.rule.id == "wild"
        assert selection.matched_by == "module_default"

    def test_global_rules_are_last_resort(self) -> None:
        config = snapshot([rule("global-pay", "global", "approve_payment"), rule("global-any", "global", "*")])

        assert RuleSelector.select(config, "finance", "approve_payment").matched_by == "global"
        assert RuleSelector.select(config, "finance", "refund").rule.id == "global-any"

    def test_no_applicable_rule(self) -> None:
        """No rule for (finance, approve_payment) and no wildcard: the request fails."""
        config = snapshot([rule("maintenance-pay", "maintenance", "approve_payment")])

        with pytest.raises(NoApplicableRule) as exc_info:
            RuleSelector.select(config, "finance", "approve_payment")

        assert exc_info.value.kind == "no_applicable_rule"
        assert exc_info.value.module == "finance"

    def test_empty_store_never_falls_back_to_defaults(self) -> None:
        with pytest.raises(NoApplicableRule):
            RuleSelector.select(ConfigurationSnapshot(), "maintenance", "approve_payment")

    def test_override_takes_precedence(self) -> None:
        config = snapshot([rule("exact", "maintenance", "approve_payment"), rule("strict", "finance", "*")])

        selection = RuleSelector.select(config, "maintenance", "approve_payment", rule_override_id="strict")

        assert selection.rule.id == "strict"
        assert selection.matched_by == "override"

    def test_unknown_override_is_ignored(self) -> None:
        config = snapshot([rule("exact", "maintenance", "approve_payment")])

        selection = RuleSelector.select(config, "maintenance", "approve_payment", rule_override_id="missing")

        assert selection.rule.id == "exact"

    def test_requested_risk_level_is_advisory(self) -> None:
        config = snapshot([rule("exact", "maintenance", "approve_payment", risk_level="critical")])

        selection = RuleSelector.select(config, "maintenance", "approve_payment", risk_level=RiskLevel.LOW)

        assert selection.rule.risk_level == RiskLevel.CRITICAL
        assert selection.requested_risk_level == RiskLevel.LOW
