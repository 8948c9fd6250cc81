"""
Tests for DecisionPolicy - threshold routing of agreement scores.
"""

import pytest

from com_yachtie_consensus.consensus.internal.ConsensusTypes import ConsensusRule, ExecutionDecision, RiskLevel
from com_yachtie_consensus.consensus.internal.DecisionPolicy import DecisionPolicy

DECISION_ORDER = [
    ExecutionDecision.REJECTED,
    ExecutionDecision.HUMAN_APPROVAL_REQUIRED,
    ExecutionDecision.AUTO_EXECUTE,
]


class TestDecisionPolicy:
    """Test suite for DecisionPolicy."""

    @pytest.fixture
    def rule(self) -> ConsensusRule:
        return ConsensusRule(
            id="payments",
            module="maintenance",
            action_type="approve_payment",
            risk_level=RiskLevel.CRITICAL,
            required_agreement_threshold=0.5,
            human_approval_threshold=0.75,
            auto_execute_threshold=0.9,
        )

    @pytest.mark.parametrize(
        "agreement,expected",
        [
            (0.0, ExecutionDecision.REJECTED),
            (0.49, ExecutionDecision.REJECTED),
            (0.5, ExecutionDecision.HUMAN_APPROVAL_REQUIRED),
            (0.6, ExecutionDecision.HUMAN_APPROVAL_REQUIRED),
            (0.75, ExecutionDecision.HUMAN_APPROVAL_REQUIRED),
            (0.8, ExecutionDecision.HUMAN_APPROVAL_REQUIRED),
            (0.9, ExecutionDecision.AUTO_EXECUTE),
            (1.0, ExecutionDecision.AUTO_EXECUTE),
        ],
    )
    def test_threshold_bands(self, rule: ConsensusRule, agreement: float, expected: ExecutionDecision) -> None:
        assert DecisionPolicy.evaluate(agreement, rule) == expected

    def test_decision_is_monotonic_in_agreement(self, rule: ConsensusRule) -> None:
        """Raising agreement never produces a more restrictive decision."""
        decisions = [DecisionPolicy.evaluate(step / 100, rule) for step in range(101)]
        ranks = [DECISION_ORDER.index(decision) for decision in decisions]

        assert ranks == sorted(ranks)

    def test_required_equals_human_approval(self) -> None:
        rule = ConsensusRule(
            id="strict",
            module="m",
            action_type="a",
            required_agreement_threshold=0.7,
            human_approval_threshold=0.7,
            auto_execute_threshold=0.8,
        )

        assert DecisionPolicy.evaluate(0.69, rule) == ExecutionDecision.REJECTED
        assert DecisionPolicy.evaluate(0.7, rule) == ExecutionDecision.HUMAN_APPROVAL_REQUIRED
        assert DecisionPolicy.evaluate(0.8, rule) == ExecutionDecision.AUTO_EXECUTE

    def test_risk_assessment_comes_from_rule(self, rule: ConsensusRule) -> None:
        assert DecisionPolicy.risk_assessment(rule) == RiskLevel.CRITICAL
