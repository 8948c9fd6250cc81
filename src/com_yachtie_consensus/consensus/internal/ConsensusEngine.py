"""
Multi-Model AI Consensus Engine

Takes a content/action request, queries several independent AI models,
aggregates their answers into one weighted agreement score and routes the
result to auto-execution, human approval or rejection according to the rule
configured for the requesting module and action.

"""

import logging
import time
from typing import Callable, Optional

import anyio

from ...utils.TypedCalls import ArityOneTypedCall
from .ConfigurationSnapshot import ConfigurationSnapshot
from .ConsensusAggregator import ConsensusAggregator
from .ConsensusErrors import ConsensusError, RequestTimeout
from .ConsensusProtocols import ConfigurationSource, MetricsRecorder, ModelInvoker
from .ConsensusTypes import (
    ConsensusMetadata,
    ConsensusRequest,
    ConsensusResult,
    ConsensusSettings,
    StageSummary,
)
from .DecisionPolicy import DecisionPolicy
from .OutputComparison import ComparisonStrategy, OutputComparator, build_comparator
from .RuleSelector import RuleSelector
from .WorkflowOrchestrator import WorkflowOrchestrator

logger = logging.getLogger(__name__)


class ConsensusEngine(ArityOneTypedCall[ConsensusRequest, ConsensusResult]):
    """
    Request-scoped consensus pipeline.

    The engine keeps no state between requests. Each call snapshots the
    active configuration, selects a rule, runs the attached workflow (or a
    flat fan-out), aggregates and decides. Callers receive either a complete
    ConsensusResult or a ConsensusError; a decision is never produced from
    fewer models than the rule's quorum.
    """

    def __init__(
        self,
        configuration: ConfigurationSource,
        invoker: ModelInvoker,
        metrics: Optional[MetricsRecorder] = None,
        settings: Optional[ConsensusSettings] = None,
        comparator_factory: Optional[Callable[[], OutputComparator]] = None,
    ) -> None:
        """
        Initialize the consensus engine.

        Args:
            configuration: Source of active models, rules and workflows
            invoker: Model Invoker used for every model call
            metrics: Optional fire-and-forget telemetry sink
            settings: Optional runtime settings. Uses defaults if not provided.
            comparator_factory: Optional factory for the output comparator, called once per request.
                Defaults to the strategy named in settings.
        """
        self._configuration = configuration
        self._invoker = invoker
        self._metrics = metrics
        self._settings = settings or ConsensusSettings()
        if comparator_factory is None and self._settings.comparison_strategy == ComparisonStrategy.CUSTOM:
            raise ValueError("CUSTOM comparison strategy requires a comparator_factory")
        self._comparator_factory = comparator_factory or self._default_comparator

    @property
    def settings(self) -> ConsensusSettings:
        return self._settings

    async def call(self, x: ConsensusRequest) -> ConsensusResult:
        """
        Evaluate a consensus request (ArityOneTypedCall implementation).

        Args:
            x: The consensus request

        Returns:
            ConsensusResult with the synthesized output and execution decision

        Raises:
            NoApplicableRule, InsufficientQuorum, WorkflowStageFailed, RequestTimeout
        """
        budget = self._settings.request_budget_seconds
        start = time.perf_counter()
        logger.info(f"🚀 === CONSENSUS REQUEST {x.session_id} ({x.module}/{x.action_type}) ===")

        try:
            with anyio.fail_after(budget):
                result = await self._evaluate(x)
        except TimeoutError as e:
            logger.error(f"Consensus request {x.session_id} exceeded its {budget:g}s budget, in-flight calls cancelled")
            raise RequestTimeout(budget) from e
        except ConsensusError as e:
            logger.error(f"Consensus request {x.session_id} failed ({e.kind}): {e}")
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        metadata = result.consensus_metadata
        logger.info(
            f"   🎯 Decision {metadata.execution_decision.value} for {x.session_id}: "
            f"confidence={result.confidence:.3f}, rule={metadata.rule_id}, "
            f"models={len(metadata.models_used)}, {duration_ms:.0f}ms"
        )
        return result

    async def _evaluate(self, request: ConsensusRequest) -> ConsensusResult:
        snapshot = await ConfigurationSnapshot.capture(self._configuration)

        workflow = snapshot.workflow_for(request.module, request.action_type)
        rule_override_id = request.rule_override_id
        if rule_override_id is None and workflow is not None:
            rule_override_id = workflow.consensus_rule_id

        selection = RuleSelector.select(
            snapshot,
            module=request.module,
            action_type=request.action_type,
            risk_level=request.risk_level,
            rule_override_id=rule_override_id,
        )
        rule = selection.rule
        logger.info(f"📋 Rule {rule.id} ({selection.matched_by}), risk={rule.risk_level.value}")

        orchestrator = WorkflowOrchestrator(
            invoker=self._invoker,
            aggregator=ConsensusAggregator(self._comparator_factory(), self._settings.verbosity),
            settings=self._settings,
            metrics=self._metrics,
        )
        if workflow is not None:
            run = await orchestrator.run_workflow(snapshot, workflow, rule, request)
        else:
            run = await orchestrator.run_flat(snapshot, rule, request)

        decision = DecisionPolicy.evaluate(run.confidence, rule)

        return ConsensusResult(
            consensus=run.output,
            confidence=run.confidence,
            consensus_metadata=ConsensusMetadata(
                algorithm_used=rule.consensus_algorithm.value,
                models_used=list(run.models_used),
                risk_assessment=DecisionPolicy.risk_assessment(rule),
                execution_decision=decision,
                agreement_score=run.confidence,
                rule_id=rule.id,
                requested_risk_level=selection.requested_risk_level,
                workflow_id=workflow.id if workflow is not None else None,
                session_id=request.session_id,
                stages=[
                    StageSummary(
                        stage_index=stage.stage_index,
                        purpose=stage.purpose,
                        parallel=stage.parallel,
                        confidence=stage.confidence,
                        models_used=list(stage.models_used),
                        degraded=stage.degraded,
                    )
                    for stage in run.stages
                ],
            ),
        )

    def _default_comparator(self) -> OutputComparator:
        strategy = self._settings.comparison_strategy
        threshold = (
            self._settings.semantic_threshold
            if strategy == ComparisonStrategy.SEMANTIC
            else self._settings.token_overlap_threshold
        )
        return build_comparator(strategy, threshold=threshold)
