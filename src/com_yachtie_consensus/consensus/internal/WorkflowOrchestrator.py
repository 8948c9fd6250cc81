"""
Execution of model fan-outs and multi-stage agent workflows.

A parallel stage invokes its models concurrently, waits for all of them at a
join barrier and aggregates the stage on its own. A sequential stage hands off
to a single authoritative model. Stage N+1 never starts before stage N joins.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

import anyio
from pydantic import BaseModel, ConfigDict, Field

from .ConfigurationSnapshot import ConfigurationSnapshot
from .ConsensusAggregator import ConsensusAggregator
from .ConsensusErrors import InsufficientQuorum, ModelInvocationError, WorkflowStageFailed
from .ConsensusProtocols import InvocationMetric, MetricsRecorder, ModelInvoker
from .ConsensusTypes import (
    AgentWorkflow,
    AggregationResult,
    AIModel,
    ConsensusRequest,
    ConsensusRule,
    ConsensusSettings,
    ModelChainStage,
    ModelOutcome,
    StageResult,
    VerbosityLevel,
)

logger = logging.getLogger(__name__)

UNAVAILABLE = "unavailable"
SEQUENTIAL_PLACEHOLDER = ""


class OrchestrationResult(BaseModel):
    """Output and confidence of a flat fan-out or a complete workflow."""

    model_config = ConfigDict(frozen=True)

    output: str = Field(description="Final synthesized output")
    confidence: float = Field(ge=0.0, le=1.0, description="Agreement the decision is based on")
    models_used: Tuple[str, ...] = Field(description="Contributing models")
    stages: Tuple[StageResult, ...] = Field(default=(), description="Workflow stages, empty for a flat fan-out")
    aggregation: Optional[AggregationResult] = Field(default=None, description="Last parallel aggregation")


class WorkflowOrchestrator:
    """
    Drives model invocations for one request.

    An orchestrator instance belongs to a single request: the outcome lists it
    accumulates are never shared with other requests.
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        aggregator: ConsensusAggregator,
        settings: ConsensusSettings,
        metrics: Optional[MetricsRecorder] = None,
    ) -> None:
        self._invoker = invoker
        self._aggregator = aggregator
        self._settings = settings
        self._metrics = metrics

    async def run_flat(
        self,
        snapshot: ConfigurationSnapshot,
        rule: ConsensusRule,
        request: ConsensusRequest,
    ) -> OrchestrationResult:
        """Single parallel fan-out across every eligible active model.

        Raises:
            InsufficientQuorum: when the fan-out (and any fallback wave) misses quorum
        """
        eligible = list(snapshot.eligible_models(rule.required_capabilities))
        logger.info(f"🗳️ Flat fan-out to {len(eligible)} model(s) under rule {rule.id}")
        outcomes = await self.fan_out(eligible, request.content, request.context, rule, request)

        successes = sum(1 for outcome in outcomes if outcome.success)
        if successes < rule.minimum_models_required and rule.fallback_models:
            tried = {model.id for model in eligible}
            fallback = [
                snapshot.models[model_id]
                for model_id in rule.fallback_models
                if model_id in snapshot.models and model_id not in tried
            ]
            if fallback:
                logger.warning(
                    f"Only {successes}/{rule.minimum_models_required} model(s) succeeded, "
                    f"trying fallback models: {', '.join(model.id for model in fallback)}"
                )
                outcomes.extend(await self.fan_out(fallback, request.content, request.context, rule, request))

        aggregation = self._aggregator.aggregate(rule, snapshot.models, outcomes)
        return OrchestrationResult(
            output=aggregation.synthesized_output,
            confidence=aggregation.agreement,
            models_used=aggregation.models_used,
            aggregation=aggregation,
        )

    async def run_workflow(
        self,
        snapshot: ConfigurationSnapshot,
        workflow: AgentWorkflow,
        rule: ConsensusRule,
        request: ConsensusRequest,
    ) -> OrchestrationResult:
        """Execute the model chain in order.

        Raises:
            WorkflowStageFailed: when a parallel stage misses quorum
        """
        logger.info(f"🔄 Running workflow {workflow.id} ({len(workflow.model_chain)} stage(s))")
        stages: List[StageResult] = []
        context = request.context
        last_aggregation: Optional[AggregationResult] = None

        for index, stage in enumerate(workflow.model_chain):
            logger.info(
                f"=== STAGE {index} ({'parallel' if stage.parallel else 'sequential'}): {stage.purpose or '-'} ==="
            )
            if stage.parallel:
                stage_result, aggregation = await self._run_parallel_stage(
                    index, stage, snapshot, rule, request, context
                )
                last_aggregation = aggregation
            else:
                stage_result = await self._run_sequential_stage(index, stage, snapshot, rule, request, context)
            stages.append(stage_result)
            context = self._chain_context(request.context, stage_result)

        confidences = [stage.confidence for stage in stages if stage.parallel and stage.confidence is not None]
        # A chain is only as strong as its weakest parallel vote
        confidence = min(confidences)

        models_used: List[str] = []
        for stage_result in stages:
            for model_id in stage_result.models_used:
                if model_id not in models_used:
                    models_used.append(model_id)

        return OrchestrationResult(
            output=stages[-1].output,
            confidence=confidence,
            models_used=tuple(models_used),
            stages=tuple(stages),
            aggregation=last_aggregation,
        )

    async def _run_parallel_stage(
        self,
        index: int,
        stage: ModelChainStage,
        snapshot: ConfigurationSnapshot,
        rule: ConsensusRule,
        request: ConsensusRequest,
        context: Optional[str],
    ) -> Tuple[StageResult, AggregationResult]:
        available, missing = self._resolve(stage.models, snapshot)
        prompt = self._stage_prompt(stage, request)
        outcomes = missing + await self.fan_out(available, prompt, context, rule, request)

        try:
            aggregation = self._aggregator.aggregate(rule, snapshot.models, outcomes)
        except InsufficientQuorum as e:
            logger.error(f"Workflow stage {index} failed: {e}")
            raise WorkflowStageFailed(index, str(e)) from e

        if self._settings.verbosity != VerbosityLevel.SILENT:
            logger.info(f"   ✓ Stage {index} agreement {aggregation.agreement:.3f}")
        return (
            StageResult(
                stage_index=index,
                purpose=stage.purpose,
                parallel=True,
                output=aggregation.synthesized_output,
                confidence=aggregation.agreement,
                models_used=aggregation.models_used,
                outcomes=tuple(outcomes),
            ),
            aggregation,
        )

    async def _run_sequential_stage(
        self,
        index: int,
        stage: ModelChainStage,
        snapshot: ConfigurationSnapshot,
        rule: ConsensusRule,
        request: ConsensusRequest,
        context: Optional[str],
    ) -> StageResult:
        authoritative_id = stage.models[0]
        available, missing = self._resolve(stage.models, snapshot)
        prompt = self._stage_prompt(stage, request)
        invoked = await self.fan_out(available, prompt, context, rule, request)

        outcomes = [
            outcome if outcome.model_id == authoritative_id else outcome.model_copy(update={"advisory": True})
            for outcome in missing + invoked
        ]
        authoritative = next(outcome for outcome in outcomes if outcome.model_id == authoritative_id)

        if authoritative.invocation is not None:
            output = authoritative.invocation.output
            models_used: Tuple[str, ...] = (authoritative_id,)
            degraded = False
        else:
            logger.warning(
                f"Sequential stage {index}: authoritative model {authoritative_id} failed "
                f"({authoritative.error_kind}), continuing with a placeholder"
            )
            output = SEQUENTIAL_PLACEHOLDER
            models_used = ()
            degraded = True

        return StageResult(
            stage_index=index,
            purpose=stage.purpose,
            parallel=False,
            output=output,
            models_used=models_used,
            degraded=degraded,
            outcomes=tuple(outcomes),
        )

    async def fan_out(
        self,
        models: Sequence[AIModel],
        prompt: str,
        context: Optional[str],
        rule: ConsensusRule,
        request: ConsensusRequest,
    ) -> List[ModelOutcome]:
        """Invoke ``models`` concurrently and join; outcomes keep the order of ``models``."""
        if not models:
            return []

        limiter = anyio.CapacityLimiter(self._settings.max_concurrent_calls)
        timeout = rule.timeout_seconds or self._settings.default_invocation_timeout_seconds
        results: Dict[int, ModelOutcome] = {}

        async def invoke_with_limiter(idx: int, model: AIModel) -> None:
            async with limiter:
                results[idx] = await self.invoke_model(model, prompt, context, timeout, request)

        async with anyio.create_task_group() as tg:
            for idx, model in enumerate(models):
                tg.start_soon(invoke_with_limiter, idx, model)

        return [results[i] for i in range(len(models))]

    async def invoke_model(
        self,
        model: AIModel,
        prompt: str,
        context: Optional[str],
        timeout: float,
        request: ConsensusRequest,
    ) -> ModelOutcome:
        """Invoke one model; every failure becomes a failed outcome rather than an exception."""
        start = time.perf_counter()
        try:
            with anyio.fail_after(timeout):
                invocation = await self._invoker.invoke(model, prompt, context, timeout)
            outcome = ModelOutcome(model_id=model.id, invocation=invocation)
            logger.debug(f"Model {model.id} answered in {invocation.latency_ms:.0f}ms")
        except TimeoutError:
            logger.warning(f"Model {model.id} timed out after {timeout:g}s")
            outcome = ModelOutcome(
                model_id=model.id,
                error_kind=ModelInvocationError.TIMEOUT,
                error_message=f"no answer within {timeout:g}s",
            )
        except ModelInvocationError as e:
            logger.warning(f"Model {model.id} failed: {e}")
            outcome = ModelOutcome(model_id=model.id, error_kind=e.kind, error_message=e.message)
        except Exception as e:
            logger.warning(f"Model {model.id} failed with unexpected error: {e}")
            outcome = ModelOutcome(
                model_id=model.id,
                error_kind=ModelInvocationError.TRANSPORT,
                error_message=str(e),
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._emit(model, outcome, elapsed_ms, request)
        return outcome

    def _emit(self, model: AIModel, outcome: ModelOutcome, elapsed_ms: float, request: ConsensusRequest) -> None:
        if self._metrics is None:
            return
        invocation = outcome.invocation
        tokens = invocation.tokens_used if invocation and invocation.tokens_used is not None else 0
        metric = InvocationMetric(
            model_id=model.id,
            latency_ms=invocation.latency_ms if invocation else elapsed_ms,
            success=outcome.success,
            cost=model.cost_per_token * tokens,
            module=request.module,
            action_type=request.action_type,
            session_id=request.session_id,
            error_kind=outcome.error_kind,
        )
        try:
            self._metrics.record(metric)
        except Exception as e:
            # Telemetry never affects the decision path
            logger.warning(f"Metrics recorder failed for model {model.id}: {e}")

    @staticmethod
    def _resolve(
        model_ids: Sequence[str], snapshot: ConfigurationSnapshot
    ) -> Tuple[List[AIModel], List[ModelOutcome]]:
        available: List[AIModel] = []
        missing: List[ModelOutcome] = []
        for model_id in model_ids:
            model = snapshot.models.get(model_id)
            if model is None:
                logger.warning(f"Model {model_id} is unknown or inactive, skipping")
                missing.append(
                    ModelOutcome(model_id=model_id, error_kind=UNAVAILABLE, error_message="unknown or inactive")
                )
            else:
                available.append(model)
        return available, missing

    @staticmethod
    def _stage_prompt(stage: ModelChainStage, request: ConsensusRequest) -> str:
        if stage.purpose:
            return f"{stage.purpose}\n\n{request.content}"
        return request.content

    @staticmethod
    def _chain_context(base_context: Optional[str], stage: StageResult) -> str:
        label = stage.purpose or f"stage {stage.stage_index}"
        chained = f"Output of previous stage ({label}):\n{stage.output}"
        return f"{base_context}\n\n{chained}" if base_context else chained
