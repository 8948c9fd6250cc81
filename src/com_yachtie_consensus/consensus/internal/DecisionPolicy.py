"""Threshold-driven routing of an agreement score to an execution decision."""

from .ConsensusTypes import ConsensusRule, ExecutionDecision, RiskLevel


class DecisionPolicy:
    """
    Maps agreement onto one of the terminal decisions using a rule's thresholds.

    Every request starts pending and ends in exactly one terminal state:

        agreement <  required_agreement_threshold  -> REJECTED
        agreement <  auto_execute_threshold        -> HUMAN_APPROVAL_REQUIRED
        otherwise                                  -> AUTO_EXECUTE

    The band between required_agreement_threshold and human_approval_threshold
    (low confidence) and the band between human_approval_threshold and
    auto_execute_threshold (mid confidence) both need a human.

    Pure: the same (agreement, rule) pair always yields the same decision.
    """

    @staticmethod
    def evaluate(agreement: float, rule: ConsensusRule) -> ExecutionDecision:
        if agreement < rule.required_agreement_threshold:
            return ExecutionDecision.REJECTED
        if agreement < rule.auto_execute_threshold:
            return ExecutionDecision.HUMAN_APPROVAL_REQUIRED
        return ExecutionDecision.AUTO_EXECUTE

    @staticmethod
    def risk_assessment(rule: ConsensusRule) -> RiskLevel:
        """Static property of the action type, never recomputed from agreement."""
        return rule.risk_level
