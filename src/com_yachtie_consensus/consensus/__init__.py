"""
Consensus module - multi-model agreement for automated fleet decisions.

This module routes a request through a configured rule and optional agent
workflow, queries several AI models concurrently and turns their weighted
agreement into an execution decision.
"""

from .ConsensusCore import ConsensusCore
from .internal import (
    AgentWorkflow,
    AIModel,
    ComparisonStrategy,
    ConfigurationError,
    ConfigurationSource,
    ConsensusAlgorithm,
    ConsensusEngine,
    ConsensusError,
    ConsensusMetadata,
    ConsensusRequest,
    ConsensusResult,
    ConsensusRule,
    ConsensusSettings,
    EntityKind,
    EntityNotFound,
    ExecutionDecision,
    InsufficientQuorum,
    InvalidRuleConfiguration,
    InvalidWorkflowConfiguration,
    InvocationMetric,
    MetricsRecorder,
    ModelChainStage,
    ModelInvocation,
    ModelInvocationError,
    ModelInvoker,
    NoApplicableRule,
    RequestTimeout,
    RiskLevel,
    VerbosityLevel,
    WorkflowStageFailed,
)

__all__ = [
    # Main Components
    "ConsensusCore",
    "ConsensusEngine",
    # Protocols
    "ModelInvoker",
    "ConfigurationSource",
    "MetricsRecorder",
    "InvocationMetric",
    "EntityKind",
    # Configuration Types
    "AIModel",
    "ConsensusRule",
    "AgentWorkflow",
    "ModelChainStage",
    "ConsensusSettings",
    "ComparisonStrategy",
    # Request/Response Types
    "ConsensusRequest",
    "ConsensusResult",
    "ConsensusMetadata",
    "ModelInvocation",
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
