"""Immutable per-request view of the active configuration."""

import logging
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .ConsensusProtocols import ConfigurationSource, EntityKind
from .ConsensusTypes import AgentWorkflow, AIModel, ConsensusRule, WILDCARD_ACTION

logger = logging.getLogger(__name__)


class ConfigurationSnapshot(BaseModel):
    """
    Active models, rules and workflows as read at request start.

    The engine evaluates a whole request against one snapshot, so store
    changes made while a request is in flight (a model being deactivated, a
    rule being edited) only affect later requests.
    """

    model_config = ConfigDict(frozen=True)

    models: Dict[str, AIModel] = Field(default_factory=dict, description="Active models by id")
    rules: Tuple[ConsensusRule, ...] = Field(default=(), description="Active rules, ordered by id")
    workflows: Tuple[AgentWorkflow, ...] = Field(default=(), description="Active workflows, ordered by id")

    @classmethod
    async def capture(cls, source: ConfigurationSource) -> "ConfigurationSnapshot":
        """Read every active entity from ``source`` once."""
        models = [m for m in await source.list_active(EntityKind.MODEL) if isinstance(m, AIModel) and m.is_active]
        rules = [r for r in await source.list_active(EntityKind.RULE) if isinstance(r, ConsensusRule) and r.is_active]
        workflows = [
            w for w in await source.list_active(EntityKind.WORKFLOW) if isinstance(w, AgentWorkflow) and w.is_active
        ]
        logger.debug(f"Captured snapshot: {len(models)} models, {len(rules)} rules, {len(workflows)} workflows")
        return cls(
            models={model.id: model for model in models},
            rules=tuple(sorted(rules, key=lambda rule: rule.id)),
            workflows=tuple(sorted(workflows, key=lambda workflow: workflow.id)),
        )

    def rule_by_id(self, rule_id: str) -> Optional[ConsensusRule]:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    def rule_for(self, module: str, action_type: str) -> Optional[ConsensusRule]:
        return next(
            (rule for rule in self.rules if rule.module == module and rule.action_type == action_type),
            None,
        )

    def workflow_for(self, module: str, action_type: str) -> Optional[AgentWorkflow]:
        """Workflow triggered by ``action_type``; an exact trigger beats a '*' trigger."""
        for trigger in (action_type, WILDCARD_ACTION):
            for workflow in self.workflows:
                if workflow.module == module and workflow.trigger_type == trigger:
                    return workflow
        return None

    def eligible_models(self, required_capabilities: Tuple[str, ...] = ()) -> Tuple[AIModel, ...]:
        """Active models carrying every required capability, by descending priority then id."""
        eligible = [model for model in self.models.values() if model.has_capabilities(required_capabilities)]
        return tuple(sorted(eligible, key=lambda model: (-model.priority, model.id)))
