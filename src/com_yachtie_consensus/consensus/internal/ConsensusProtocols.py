"""
Collaborator contracts of the consensus engine.

The engine depends only on these protocols: a Model Invoker that answers a
prompt, a configuration source that lists active entities, and a metrics sink
that accepts telemetry without blocking.
"""

from abc import abstractmethod
from enum import Enum
from typing import List, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .ConsensusTypes import AgentWorkflow, AIModel, ConsensusRule, ModelInvocation

ConfigurationEntity = Union[AIModel, ConsensusRule, AgentWorkflow]


class EntityKind(str, Enum):
    """Kinds of configuration entities the store holds."""

    MODEL = "model"
    RULE = "rule"
    WORKFLOW = "workflow"


@runtime_checkable
class ModelInvoker(Protocol):
    """
    The engine's only outbound dependency.

    Implementations return a ModelInvocation or raise ModelInvocationError
    (transport, rate_limit or invalid_response). The engine treats any
    exception as "this model failed".
    """

    @abstractmethod
    async def invoke(
        self,
        model: AIModel,
        prompt: str,
        context: Optional[str],
        timeout: float,
    ) -> ModelInvocation:
        """
        Invoke one model.

        Args:
            model: Model configuration (id, provider, provider model name, parameters)
            prompt: Prompt for the model
            context: Optional context, including outputs chained from earlier stages
            timeout: Seconds the caller will wait before treating the call as failed

        Returns:
            The model's answer
        """
        ...


@runtime_checkable
class ConfigurationSource(Protocol):
    """Read-only view of the Model Registry, Rule Store and workflow store."""

    async def list_active(self, kind: EntityKind) -> List[ConfigurationEntity]: ...

    async def get_by_id(self, kind: EntityKind, entity_id: str) -> ConfigurationEntity: ...


class InvocationMetric(BaseModel):
    """Telemetry for one model invocation."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str = Field(description="Invoked model")
    latency_ms: float = Field(ge=0.0, description="Observed latency in milliseconds")
    success: bool = Field(description="Whether the invocation succeeded")
    cost: float = Field(default=0.0, ge=0.0, description="Estimated cost in USD")
    module: Optional[str] = Field(default=None, description="Requesting module")
    action_type: Optional[str] = Field(default=None, description="Requested action")
    session_id: Optional[str] = Field(default=None, description="Request session id")
    error_kind: Optional[str] = Field(default=None, description="Failure kind when unsuccessful")


@runtime_checkable
class MetricsRecorder(Protocol):
    """Fire-and-forget telemetry sink. ``record`` must return without waiting on I/O."""

    def record(self, metric: InvocationMetric) -> None: ...
