"""Consensus pipeline internals: types, aggregation, rule selection and orchestration."""

from .ConfigurationSnapshot import ConfigurationSnapshot
from .ConsensusAggregator import ConsensusAggregator
from .ConsensusEngine import ConsensusEngine
from .ConsensusErrors import (
    ConfigurationError,
    ConsensusError,
    EntityNotFound,
    InsufficientQuorum,
    InvalidRuleConfiguration,
    InvalidWorkflowConfiguration,
    ModelInvocationError,
    NoApplicableRule,
    RequestTimeout,
    WorkflowStageFailed,
)
from .ConsensusProtocols import (
    ConfigurationEntity,
    ConfigurationSource,
    EntityKind,
    InvocationMetric,
    MetricsRecorder,
    ModelInvoker,
)
from .ConsensusTypes import (
    AgentWorkflow,
    AggregationResult,
    AIModel,
    ConsensusAlgorithm,
    ConsensusMetadata,
    ConsensusRequest,
    ConsensusResult,
    ConsensusRule,
    ConsensusSettings,
    ExecutionDecision,
    ModelChainStage,
    ModelInvocation,
    ModelOutcome,
    OutputCluster,
    RiskLevel,
    StageResult,
    StageSummary,
    VerbosityLevel,
    WorkflowStep,
)
from .DecisionPolicy import DecisionPolicy
from .OutputComparison import ComparisonStrategy, OutputComparator, build_comparator
from .RuleSelector import RuleSelection, RuleSelector
from .WorkflowOrchestrator import OrchestrationResult, WorkflowOrchestrator

__all__ = [
    # Engine
    "ConsensusEngine",
    "ConfigurationSnapshot",
    "ConsensusAggregator",
    "DecisionPolicy",
    "RuleSelector",
    "RuleSelection",
    "WorkflowOrchestrator",
    "OrchestrationResult",
    # Comparison
    "ComparisonStrategy",
    "OutputComparator",
    "build_comparator",
    # Protocols
    "ModelInvoker",
    "ConfigurationSource",
    "ConfigurationEntity",
    "EntityKind",
    "MetricsRecorder",
    "InvocationMetric",
    # Types
    "AIModel",
    "ConsensusRule",
    "AgentWorkflow",
    "ModelChainStage",
    "WorkflowStep",
    "ConsensusRequest",
    "ConsensusResult",
    "ConsensusMetadata",
    "ConsensusSettings",
    "ModelInvocation",
    "ModelOutcome",
    "OutputCluster",
    "AggregationResult",
    "StageResult",
    "StageSummary",
    # Enums
    "RiskLevel",
    "ConsensusAlgorithm",
    "ExecutionDecision",
    "VerbosityLevel",
    # Errors
    "ConsensusError",
    "ConfigurationError",
    "InvalidRuleConfiguration",
    "InvalidWorkflowConfiguration",
    "EntityNotFound",
    "NoApplicableRule",
    "InsufficientQuorum",
    "WorkflowStageFailed",
    "RequestTimeout",
    "ModelInvocationError",
]
