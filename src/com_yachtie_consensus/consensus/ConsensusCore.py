"""
Core module for consensus functionality.

This module provides the main entry point for consensus operations: building
an engine from its collaborators and validated configuration entities.
"""

from typing import Any, Callable, Dict, Optional, Sequence

from .internal.ConsensusEngine import ConsensusEngine
from .internal.ConsensusProtocols import ConfigurationSource, MetricsRecorder, ModelInvoker
from .internal.ConsensusTypes import (
    AgentWorkflow,
    AIModel,
    ConsensusRequest,
    ConsensusRule,
    ConsensusSettings,
    RiskLevel,
)
from .internal.OutputComparison import OutputComparator


class ConsensusCore:
    @staticmethod
    def engine(
        configuration: ConfigurationSource,
        invoker: ModelInvoker,
        metrics: Optional[MetricsRecorder] = None,
        settings: Optional[ConsensusSettings] = None,
        comparator_factory: Optional[Callable[[], OutputComparator]] = None,
    ) -> ConsensusEngine:
        """Create a consensus engine.

        Args:
            configuration: Source of active models, rules and workflows
            invoker: Model Invoker used for every model call
            metrics: Fire-and-forget telemetry sink (optional)
            settings: Consensus settings (optional)
            comparator_factory: Custom output comparator factory (optional)

        Returns:
            ConsensusEngine ready to evaluate requests
        """
        return ConsensusEngine(
            configuration=configuration,
            invoker=invoker,
            metrics=metrics,
            settings=settings,
            comparator_factory=comparator_factory,
        )

    @staticmethod
    def model(
        id: str,
        provider: str,
        capabilities: Sequence[str] = (),
        priority: int = 1,
        success_rate: float = 100.0,
        **kwargs: Any,
    ) -> AIModel:
        """Create a model registry entry.

        Args:
            id: Unique identifier for the model
            provider: Provider name, matched against rule model_weights
            capabilities: Capability tags
            priority: Tie-break rank, higher wins
            success_rate: Rolling success rate in percent
            **kwargs: Any other AIModel field (model_name, cost_per_token, parameters, ...)

        Returns:
            AIModel properly configured
        """
        return AIModel(
            id=id,
            provider=provider,
            capabilities=tuple(capabilities),
            priority=priority,
            success_rate=success_rate,
            **kwargs,
        )

    @staticmethod
    def rule(
        id: str,
        module: str,
        action_type: str,
        required_agreement_threshold: float,
        human_approval_threshold: float,
        auto_execute_threshold: float,
        minimum_models_required: int = 1,
        model_weights: Optional[Dict[str, float]] = None,
        **kwargs: Any,
    ) -> ConsensusRule:
        """Create a consensus rule.

        Raises:
            InvalidRuleConfiguration: thresholds out of order or weights out of range
        """
        return ConsensusRule.load(
            {
                "id": id,
                "module": module,
                "action_type": action_type,
                "required_agreement_threshold": required_agreement_threshold,
                "human_approval_threshold": human_approval_threshold,
                "auto_execute_threshold": auto_execute_threshold,
                "minimum_models_required": minimum_models_required,
                "model_weights": model_weights or {},
                **kwargs,
            }
        )

    @staticmethod
    def workflow(
        id: str,
        module: str,
        trigger_type: str,
        model_chain: Sequence[Dict[str, Any]],
        consensus_rule_id: Optional[str] = None,
        **kwargs: Any,
    ) -> AgentWorkflow:
        """Create an agent workflow.

        Args:
            id: Unique identifier for the workflow
            module: Module the workflow serves
            trigger_type: Action type that triggers it, '*' for any
            model_chain: Stages as dicts with ``models``, ``parallel`` and ``purpose``
            consensus_rule_id: Rule bound to the workflow (optional)

        Raises:
            InvalidWorkflowConfiguration: empty chain or no parallel stage
        """
        return AgentWorkflow.load(
            {
                "id": id,
                "module": module,
                "trigger_type": trigger_type,
                "model_chain": list(model_chain),
                "consensus_rule_id": consensus_rule_id,
                **kwargs,
            }
        )

    @staticmethod
    def request(
        content: str,
        module: str,
        action_type: str,
        session_id: str,
        context: Optional[str] = None,
        rule_override_id: Optional[str] = None,
        risk_level: Optional[RiskLevel] = None,
        user_id: Optional[str] = None,
    ) -> ConsensusRequest:
        """Create a consensus request."""
        return ConsensusRequest(
            content=content,
            module=module,
            action_type=action_type,
            session_id=session_id,
            context=context,
            rule_override_id=rule_override_id,
            risk_level=risk_level,
            user_id=user_id,
        )
