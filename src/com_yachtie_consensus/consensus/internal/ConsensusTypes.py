"""
Types for the multi-model consensus engine.

Configuration entities (models, rules, workflows) are closed, frozen pydantic
records validated at construction. Request, outcome and result types describe
one consensus evaluation.
"""

import os
from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .ConsensusErrors import InvalidRuleConfiguration, InvalidWorkflowConfiguration
from .OutputComparison import ComparisonStrategy

WILDCARD_ACTION = "*"
GLOBAL_MODULE = "global"


def _duplicates(ids: Tuple[str, ...]) -> List[str]:
    return sorted(model_id for model_id, count in Counter(ids).items() if count > 1)


class RiskLevel(str, Enum):
    """Configured strictness of an action type."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConsensusAlgorithm(str, Enum):
    """Aggregation strategies a rule can request."""

    WEIGHTED_AVERAGE = "weighted_average"
    MAJORITY_VOTE = "majority_vote"
    CONFIDENCE_WEIGHTED = "confidence_weighted"


class ExecutionDecision(str, Enum):
    """Terminal states of the decision policy."""

    AUTO_EXECUTE = "auto_execute"
    HUMAN_APPROVAL_REQUIRED = "human_approval_required"
    REJECTED = "rejected"


class VerbosityLevel(Enum):
    """Logging verbosity levels for consensus operations."""

    SILENT = 0  # No logging except errors
    NORMAL = 1  # Key milestones only
    VERBOSE = 2  # Full vote distribution per stage


class AIModel(BaseModel):
    """Configuration for one AI model in the registry."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str = Field(description="Unique identifier for the model")
    provider: str = Field(description="Provider name, used to look up rule weights")
    model_name: Optional[str] = Field(
        default=None,
        description="Provider-side model string sent by the invoker (defaults to id)",
    )
    capabilities: Tuple[str, ...] = Field(default=(), description="Ordered capability tags")
    is_active: bool = Field(default=True, description="Inactive models are never invoked")
    priority: int = Field(default=1, ge=0, description="Tie-break rank, higher wins")
    success_rate: float = Field(default=100.0, ge=0.0, le=100.0, description="Rolling success rate (0-100)")
    avg_latency_ms: float = Field(default=0.0, ge=0.0, description="Average latency in milliseconds")
    cost_per_token: float = Field(default=0.0, ge=0.0, description="Cost per token in USD")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Provider parameters such as temperature")

    @property
    def provider_model_name(self) -> str:
        return self.model_name or self.id

    def has_capabilities(self, required: Tuple[str, ...]) -> bool:
        return all(capability in self.capabilities for capability in required)


class ConsensusRule(BaseModel):
    """Thresholds and weights governing automated decisions for a (module, action_type)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier for the rule")
    name: str = Field(default="", description="Human readable rule name")
    module: str = Field(description="Module the rule applies to, or 'global'")
    action_type: str = Field(description="Action type the rule applies to, '*' for the module default")
    risk_level: RiskLevel = Field(default=RiskLevel.MEDIUM, description="Configured strictness of the action")
    consensus_algorithm: ConsensusAlgorithm = Field(
        default=ConsensusAlgorithm.WEIGHTED_AVERAGE,
        description="Aggregation strategy",
    )
    minimum_models_required: int = Field(default=1, ge=1, description="Quorum of successful models")
    required_agreement_threshold: float = Field(ge=0.0, le=1.0, description="Minimum agreement to accept anything")
    human_approval_threshold: float = Field(ge=0.0, le=1.0, description="Approval band lower boundary")
    auto_execute_threshold: float = Field(ge=0.0, le=1.0, description="Minimum agreement to auto-execute")
    model_weights: Dict[str, float] = Field(default_factory=dict, description="Provider name to weight in [0, 1]")
    fallback_models: Tuple[str, ...] = Field(
        default=(),
        description="Model ids invoked only when the first wave misses quorum",
    )
    required_capabilities: Tuple[str, ...] = Field(
        default=(),
        description="Capabilities a model needs to take part in a flat fan-out",
    )
    timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Per-invocation timeout overriding the engine default",
    )
    is_active: bool = Field(default=True, description="Inactive rules are never selected")

    @field_validator("fallback_models")
    @classmethod
    def _check_fallback_models(cls, fallback_models: Tuple[str, ...]) -> Tuple[str, ...]:
        duplicates = _duplicates(fallback_models)
        if duplicates:
            raise InvalidRuleConfiguration(f"Duplicate fallback model ids: {', '.join(duplicates)}")
        return fallback_models

    @field_validator("model_weights")
    @classmethod
    def _check_weights(cls, weights: Dict[str, float]) -> Dict[str, float]:
        for provider, weight in weights.items():
            if not 0.0 <= weight <= 1.0:
                raise InvalidRuleConfiguration(f"Weight for provider '{provider}' must be within [0, 1], got {weight}")
        return weights

    @model_validator(mode="after")
    def _check_threshold_ordering(self) -> "ConsensusRule":
        if not (
            self.required_agreement_threshold
            <= self.human_approval_threshold
            < self.auto_execute_threshold
            <= 1.0
        ):
            raise InvalidRuleConfiguration(
                f"Rule '{self.id}' thresholds must satisfy required_agreement "
                f"({self.required_agreement_threshold}) <= human_approval ({self.human_approval_threshold}) "
                f"< auto_execute ({self.auto_execute_threshold}) <= 1"
            )
        return self

    @classmethod
    def load(cls, data: Dict[str, Any]) -> "ConsensusRule":
        """Validate raw configuration, reporting every failure as InvalidRuleConfiguration."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidRuleConfiguration(f"Invalid consensus rule {data.get('id', '<unknown>')}: {e}") from e

    def weight_for(self, provider: str) -> Optional[float]:
        return self.model_weights.get(provider)


class WorkflowStep(BaseModel):
    """Descriptive step of an agent workflow."""

    model_config = ConfigDict(frozen=True)

    step: str = Field(description="Step name")
    description: str = Field(default="", description="What the step does")


class ModelChainStage(BaseModel):
    """One stage of a workflow's model chain."""

    model_config = ConfigDict(frozen=True)

    models: Tuple[str, ...] = Field(min_length=1, description="Model ids; the first is authoritative when sequential")
    parallel: bool = Field(default=True, description="Parallel vote (True) or sequential hand-off (False)")
    purpose: str = Field(default="", description="Purpose label, prepended to the stage prompt")

    @field_validator("models")
    @classmethod
    def _check_models(cls, models: Tuple[str, ...]) -> Tuple[str, ...]:
        duplicates = _duplicates(models)
        if duplicates:
            raise InvalidWorkflowConfiguration(f"Duplicate model ids in stage: {', '.join(duplicates)}")
        return models


class AgentWorkflow(BaseModel):
    """Ordered multi-stage execution plan."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier for the workflow")
    workflow_name: str = Field(default="", description="Human readable workflow name")
    module: str = Field(description="Module the workflow serves")
    trigger_type: str = Field(description="Action type that triggers the workflow, '*' for any")
    workflow_steps: Tuple[WorkflowStep, ...] = Field(default=(), description="Descriptive steps")
    model_chain: Tuple[ModelChainStage, ...] = Field(description="Ordered model stages")
    consensus_rule_id: Optional[str] = Field(default=None, description="Rule bound to this workflow")
    is_active: bool = Field(default=True, description="Inactive workflows are never executed")

    @model_validator(mode="after")
    def _check_chain(self) -> "AgentWorkflow":
        if not self.model_chain:
            raise InvalidWorkflowConfiguration(f"Workflow '{self.id}' has an empty model chain")
        if not any(stage.parallel for stage in self.model_chain):
            raise InvalidWorkflowConfiguration(
                f"Workflow '{self.id}' needs at least one parallel stage to establish quorum"
            )
        return self

    @classmethod
    def load(cls, data: Dict[str, Any]) -> "AgentWorkflow":
        """Validate raw configuration, reporting every failure as InvalidWorkflowConfiguration."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidWorkflowConfiguration(f"Invalid workflow {data.get('id', '<unknown>')}: {e}") from e


class ConsensusRequest(BaseModel):
    """A content/action request submitted for consensus."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="The task payload")
    module: str = Field(description="Requesting module, e.g. 'maintenance'")
    action_type: str = Field(description="Action being decided, e.g. 'approve_payment'")
    context: Optional[str] = Field(default=None, description="Additional context for the models")
    session_id: str = Field(description="Idempotency and tracing key")
    rule_override_id: Optional[str] = Field(default=None, description="Explicit rule to apply")
    risk_level: Optional[RiskLevel] = Field(default=None, description="Caller-declared risk, advisory only")
    user_id: Optional[str] = Field(default=None, description="Requesting user, for audit")


class ModelInvocation(BaseModel):
    """Successful answer from the Model Invoker."""

    model_config = ConfigDict(frozen=True)

    output: str = Field(description="Text output of the model")
    provider_confidence: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, description="Confidence reported by the provider, if any"
    )
    latency_ms: float = Field(default=0.0, ge=0.0, description="Observed latency in milliseconds")
    tokens_used: Optional[int] = Field(default=None, ge=0, description="Tokens consumed, if reported")


class ModelOutcome(BaseModel):
    """Outcome of invoking one model: success with an invocation, or failure."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str = Field(description="Invoked model")
    invocation: Optional[ModelInvocation] = Field(default=None, description="Present on success")
    error_kind: Optional[str] = Field(default=None, description="Failure kind on failure")
    error_message: Optional[str] = Field(default=None, description="Failure detail on failure")
    advisory: bool = Field(default=False, description="Recorded but not required to succeed")

    @property
    def success(self) -> bool:
        return self.invocation is not None


class OutputCluster(BaseModel):
    """Group of models whose outputs were judged equivalent."""

    model_config = ConfigDict(frozen=True)

    representative: str = Field(description="Highest-weighted member of the cluster")
    members: Tuple[str, ...] = Field(description="Member model ids, by descending weight")
    weight: float = Field(ge=0.0, description="Sum of member effective weights")


class AggregationResult(BaseModel):
    """Weighted agreement over one set of model outcomes."""

    model_config = ConfigDict(frozen=True)

    synthesized_output: str = Field(description="Output of the plurality cluster representative")
    agreement: float = Field(ge=0.0, le=1.0, description="Weight share of the plurality cluster")
    models_used: Tuple[str, ...] = Field(description="Successful models by descending effective weight")
    weights: Dict[str, float] = Field(description="Normalised effective weight per successful model")
    clusters: Tuple[OutputCluster, ...] = Field(description="Agreeing clusters, plurality first")
    algorithm: ConsensusAlgorithm = Field(description="Strategy used")


class StageResult(BaseModel):
    """Result of one workflow stage."""

    model_config = ConfigDict(frozen=True)

    stage_index: int = Field(description="Position in the model chain")
    purpose: str = Field(default="", description="Stage purpose label")
    parallel: bool = Field(description="Whether the stage voted in parallel")
    output: str = Field(description="Stage output passed forward")
    confidence: Optional[float] = Field(default=None, description="Agreement for parallel stages")
    models_used: Tuple[str, ...] = Field(default=(), description="Models that contributed")
    degraded: bool = Field(default=False, description="Sequential stage whose authoritative model failed")
    outcomes: Tuple[ModelOutcome, ...] = Field(default=(), description="Raw per-model outcomes")


class StageSummary(BaseModel):
    """Per-stage summary surfaced in result metadata."""

    stage_index: int
    purpose: str
    parallel: bool
    confidence: Optional[float] = None
    models_used: List[str] = Field(default_factory=list)
    degraded: bool = False


class ConsensusMetadata(BaseModel):
    """Audit metadata attached to every consensus result."""

    algorithm_used: str = Field(description="Aggregation strategy applied")
    models_used: List[str] = Field(description="Contributing models by descending weight")
    risk_assessment: RiskLevel = Field(description="Risk level configured on the matched rule")
    execution_decision: ExecutionDecision = Field(description="Decision of the policy evaluator")
    agreement_score: float = Field(ge=0.0, le=1.0, description="Agreement the decision was based on")
    rule_id: str = Field(description="Rule that governed the decision")
    requested_risk_level: Optional[RiskLevel] = Field(default=None, description="Caller's advisory risk level")
    workflow_id: Optional[str] = Field(default=None, description="Workflow executed, if any")
    session_id: str = Field(description="Request session id")
    stages: List[StageSummary] = Field(default_factory=list, description="Per-stage summaries")


class ConsensusResult(BaseModel):
    """Complete outcome of a consensus request."""

    consensus: str = Field(description="Synthesized output")
    confidence: float = Field(ge=0.0, le=1.0, description="Aggregate agreement")
    consensus_metadata: ConsensusMetadata = Field(description="Decision metadata")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the result was produced",
    )


class ConsensusSettings(BaseModel):
    """Runtime settings for the consensus engine."""

    default_invocation_timeout_seconds: float = Field(
        default=5.0, gt=0.0, description="Per-invocation timeout when the rule sets none"
    )
    request_budget_seconds: float = Field(
        default=30.0, gt=0.0, description="Global wall-clock budget for one request"
    )
    max_concurrent_calls: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of concurrent model calls within one stage",
    )
    comparison_strategy: ComparisonStrategy = Field(
        default=ComparisonStrategy.NORMALIZED,
        description="How model outputs are judged equivalent",
    )
    token_overlap_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0, description="Jaccard threshold for token_overlap comparison"
    )
    semantic_threshold: float = Field(
        default=0.85, ge=0.0, le=1.0, description="Cosine threshold for semantic comparison"
    )
    verbosity: VerbosityLevel = Field(
        default=VerbosityLevel.NORMAL,
        description="Logging verbosity level for consensus operations",
    )

    @classmethod
    def from_env(cls, prefix: str = "YACHTIE_CONSENSUS_") -> "ConsensusSettings":
        """Build settings from environment variables, e.g. YACHTIE_CONSENSUS_REQUEST_BUDGET_SECONDS."""
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is None:
                continue
            if name == "verbosity":
                values[name] = VerbosityLevel[raw.upper()]
            else:
                values[name] = raw
        return cls.model_validate(values)
