"""Resolution of the single consensus rule that governs a request."""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .ConfigurationSnapshot import ConfigurationSnapshot
from .ConsensusErrors import NoApplicableRule
from .ConsensusTypes import GLOBAL_MODULE, WILDCARD_ACTION, ConsensusRule, RiskLevel

logger = logging.getLogger(__name__)


class RuleSelection(BaseModel):
    """The rule chosen for a request and how it was found."""

    model_config = ConfigDict(frozen=True)

    rule: ConsensusRule = Field(description="Rule to apply")
    matched_by: str = Field(description="override, exact, module_default, global or global_default")
    requested_risk_level: Optional[RiskLevel] = Field(
        default=None, description="Caller's advisory risk level, reported for audit"
    )


class RuleSelector:
    """
    Picks the active rule for (module, action_type).

    Lookup order:
    1. An explicit override id that resolves to an active rule
    2. Exact (module, action_type)
    3. (module, '*')
    4. ('global', action_type), then ('global', '*')

    Nothing else: a request without a matching rule fails rather than falling
    back to permissive defaults.
    """

    @staticmethod
    def select(
        snapshot: ConfigurationSnapshot,
        module: str,
        action_type: str,
        risk_level: Optional[RiskLevel] = None,
        rule_override_id: Optional[str] = None,
    ) -> RuleSelection:
        """
        Resolve the rule for a request.

        Raises:
            NoApplicableRule: when no candidate matches
        """
        if rule_override_id:
            override = snapshot.rule_by_id(rule_override_id)
            if override is not None:
                logger.debug(f"Rule override {rule_override_id} applied")
                return RuleSelector._selection(override, "override", risk_level)
            logger.warning(f"Rule override '{rule_override_id}' is unknown or inactive, using rule lookup")

        candidates = (
            (module, action_type, "exact"),
            (module, WILDCARD_ACTION, "module_default"),
            (GLOBAL_MODULE, action_type, "global"),
            (GLOBAL_MODULE, WILDCARD_ACTION, "global_default"),
        )
        for candidate_module, candidate_action, matched_by in candidates:
            rule = snapshot.rule_for(candidate_module, candidate_action)
            if rule is not None:
                return RuleSelector._selection(rule, matched_by, risk_level)

        logger.error(f"No applicable rule for module={module} action_type={action_type}")
        raise NoApplicableRule(module, action_type)

    @staticmethod
    def _selection(rule: ConsensusRule, matched_by: str, risk_level: Optional[RiskLevel]) -> RuleSelection:
        if risk_level is not None and risk_level != rule.risk_level:
            logger.info(
                f"Requested risk level {risk_level.value} differs from rule {rule.id} "
                f"({rule.risk_level.value}); the rule's level governs"
            )
        return RuleSelection(rule=rule, matched_by=matched_by, requested_risk_level=risk_level)
