"""
Consensus ASGI Module - HTTP surface for submitting consensus requests and inspecting configuration
"""

import logging
from typing import Any, Dict, List, Optional, Type, cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from com_yachtie_consensus.asgi.ASGICoreModule import ASGICoreModule, BackgroundTask, ExceptionHandler
from com_yachtie_consensus.metrics.MetricsRecorder import BufferedMetricsRecorder

from .internal.ConsensusEngine import ConsensusEngine
from .internal.ConsensusErrors import (
    ConsensusError,
    EntityNotFound,
    InsufficientQuorum,
    InvalidRuleConfiguration,
    InvalidWorkflowConfiguration,
    NoApplicableRule,
    RequestTimeout,
    WorkflowStageFailed,
)
from .internal.ConsensusProtocols import ConfigurationSource, EntityKind, MetricsRecorder
from .internal.ConsensusTypes import AgentWorkflow, AIModel, ConsensusRequest, ConsensusResult, ConsensusRule

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: Dict[Type[ConsensusError], int] = {
    NoApplicableRule: 404,
    EntityNotFound: 404,
    InsufficientQuorum: 503,
    WorkflowStageFailed: 502,
    RequestTimeout: 504,
    InvalidRuleConfiguration: 500,
    InvalidWorkflowConfiguration: 500,
}


class ErrorBody(BaseModel):
    """JSON body returned for every consensus failure."""

    error: str = Field(description="Stable error kind")
    message: str = Field(description="Human readable detail")
    stage_index: Optional[int] = Field(default=None, description="Failed workflow stage, if any")


class HealthStatus(BaseModel):
    status: str
    models: int
    rules: int
    workflows: int


def status_code_for(error: ConsensusError) -> int:
    for error_class in type(error).__mro__:
        if error_class in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_class]
    return 500


async def consensus_error_handler(request: Request, exc: Exception) -> Response:
    """Render a ConsensusError as ``{"error", "message", "stage_index"?}``."""
    error = cast(ConsensusError, exc)
    body = ErrorBody(
        error=error.kind,
        message=error.message,
        stage_index=error.stage_index if isinstance(error, WorkflowStageFailed) else None,
    )
    return JSONResponse(status_code=status_code_for(error), content=body.model_dump(exclude_none=True))


class ConsensusASGIModule(ASGICoreModule):
    """REST API over a ConsensusEngine and its configuration source."""

    engine: ConsensusEngine = Field(exclude=True, description="Engine evaluating requests")
    configuration: ConfigurationSource = Field(exclude=True, description="Active models, rules and workflows")
    metrics: Optional[MetricsRecorder] = Field(
        default=None, exclude=True, description="Recorder drained in the background when buffered"
    )

    def __init__(
        self,
        engine: ConsensusEngine,
        configuration: ConfigurationSource,
        metrics: Optional[MetricsRecorder] = None,
        prefix: str = "/consensus",
        **kwargs: Any,
    ) -> None:
        """Initialize the consensus module.

        Args:
            engine: Engine evaluating requests
            configuration: Source the engine reads, exposed read-only
            metrics: Recorder the engine writes to; a BufferedMetricsRecorder is drained while the app runs
            prefix: URL prefix for this module
            **kwargs: Additional arguments passed to parent
        """
        super().__init__(
            engine=engine,
            configuration=configuration,
            metrics=metrics,
            prefix=prefix,
            title="Consensus",
            description="Multi-model consensus decisions",
            tags=["consensus"],
            **kwargs,
        )

    def exception_handlers(self) -> Dict[Type[Exception], ExceptionHandler]:
        return {ConsensusError: consensus_error_handler}

    def background_tasks(self) -> List[BackgroundTask]:
        if isinstance(self.metrics, BufferedMetricsRecorder):
            return [self.metrics.run]
        return []

    def setup_routes(self, router: APIRouter) -> None:
        """Set up consensus routes."""

        @router.post("/requests", response_model=ConsensusResult, responses={404: {"model": ErrorBody}})
        async def submit_request(request: ConsensusRequest) -> ConsensusResult:
            return await self.engine.call(request)

        @router.get("/health", response_model=HealthStatus)
        async def health() -> HealthStatus:
            return HealthStatus(
                status="ok",
                models=len(await self.configuration.list_active(EntityKind.MODEL)),
                rules=len(await self.configuration.list_active(EntityKind.RULE)),
                workflows=len(await self.configuration.list_active(EntityKind.WORKFLOW)),
            )

        @router.get("/rules", response_model=List[ConsensusRule])
        async def list_rules() -> List[Any]:
            return sorted(await self.configuration.list_active(EntityKind.RULE), key=lambda rule: rule.id)

        @router.get("/rules/{rule_id}", response_model=ConsensusRule)
        async def get_rule(rule_id: str) -> Any:
            return await self.configuration.get_by_id(EntityKind.RULE, rule_id)

        @router.get("/models", response_model=List[AIModel])
        async def list_models() -> List[Any]:
            models = await self.configuration.list_active(EntityKind.MODEL)
            return sorted(models, key=lambda model: (-model.priority, model.id))

        @router.get("/workflows", response_model=List[AgentWorkflow])
        async def list_workflows() -> List[Any]:
            return sorted(await self.configuration.list_active(EntityKind.WORKFLOW), key=lambda workflow: workflow.id)
