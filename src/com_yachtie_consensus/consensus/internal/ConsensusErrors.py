"""
Error taxonomy for the consensus engine.

Every error carries a stable ``kind`` string so that API layers can report
failures without inspecting exception classes.
"""

from typing import Optional


class ConsensusError(Exception):
    """Base class for all consensus engine failures."""

    kind: str = "consensus_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ConsensusError):
    """Configuration could not be loaded or is inconsistent."""

    kind = "configuration_error"


class InvalidRuleConfiguration(ConfigurationError):
    """A consensus rule violates its threshold ordering or field constraints."""

    kind = "invalid_rule_configuration"


class InvalidWorkflowConfiguration(ConfigurationError):
    """An agent workflow has no usable model chain."""

    kind = "invalid_workflow_configuration"


class EntityNotFound(ConfigurationError):
    """A configuration entity was requested by id and does not exist."""

    kind = "entity_not_found"

    def __init__(self, entity_kind: str, entity_id: str) -> None:
        super().__init__(f"{entity_kind} '{entity_id}' not found")
        self.entity_kind = entity_kind
        self.entity_id = entity_id


class NoApplicableRule(ConsensusError):
    """No active rule matches the request and no wildcard default exists."""

    kind = "no_applicable_rule"

    def __init__(self, module: str, action_type: str) -> None:
        super().__init__(f"No active consensus rule for module='{module}' action_type='{action_type}'")
        self.module = module
        self.action_type = action_type


class InsufficientQuorum(ConsensusError):
    """Fewer models succeeded than the rule's minimum_models_required."""

    kind = "insufficient_quorum"

    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Quorum not reached: {available} successful model(s), {required} required")
        self.required = required
        self.available = available


class WorkflowStageFailed(ConsensusError):
    """A parallel workflow stage could not reach quorum."""

    kind = "workflow_stage_failed"

    def __init__(self, stage_index: int, reason: Optional[str] = None) -> None:
        message = f"Workflow stage {stage_index} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.stage_index = stage_index


class RequestTimeout(ConsensusError):
    """The global wall-clock budget for a request was exceeded."""

    kind = "request_timeout"

    def __init__(self, budget_seconds: float) -> None:
        super().__init__(f"Consensus request exceeded its {budget_seconds:g}s budget")
        self.budget_seconds = budget_seconds


class ModelInvocationError(ConsensusError):
    """A single model invocation failed.

    Recoverable: the engine logs it and excludes the model from quorum.
    ``kind`` is one of ``transport``, ``rate_limit``, ``invalid_response``
    or ``timeout``.
    """

    TRANSPORT = "transport"
    RATE_LIMIT = "rate_limit"
    INVALID_RESPONSE = "invalid_response"
    TIMEOUT = "timeout"

    def __init__(self, model_id: str, kind: str, message: str) -> None:
        super().__init__(f"Model '{model_id}' failed ({kind}): {message}")
        self.model_id = model_id
        self.kind = kind
