"""
Tests for ConsensusCore - the main facade for consensus operations.

These tests drive complete requests through the engine: configuration
snapshot, rule selection, fan-out or workflow, aggregation and decision.
"""

from typing import Any, Dict, List, Optional

import pytest

from com_yachtie_consensus.consensus import (
    ComparisonStrategy,
    ConsensusCore,
    ConsensusEngine,
    ConsensusRequest,
    ConsensusRule,
    ConsensusSettings,
    ExecutionDecision,
    InsufficientQuorum,
    InvalidRuleConfiguration,
    InvalidWorkflowConfiguration,
    NoApplicableRule,
    RequestTimeout,
    RiskLevel,
)
from com_yachtie_consensus.metrics import InMemoryMetricsRecorder
from com_yachtie_consensus.store import InMemoryConfigurationStore
from com_yachtie_consensus.utils.instructor import MockInstructorModelInvoker, ScriptedReply
from com_yachtie_consensus.utils.TypedCalls import ArityOneTypedCall


def payment_rule(**overrides: Any) -> ConsensusRule:
    return ConsensusCore.rule(
        id="maintenance-approve-payment",
        module="maintenance",
        action_type="approve_payment",
        required_agreement_threshold=0.5,
        human_approval_threshold=0.75,
        auto_execute_threshold=0.9,
        minimum_models_required=overrides.pop("minimum_models_required", 3),
        model_weights={"openai": 0.4, "anthropic": 0.4, "google": 0.2},
        risk_level=RiskLevel.CRITICAL,
        **overrides,
    )


def make_store(rules: Optional[List[ConsensusRule]] = None, **kwargs: Any) -> InMemoryConfigurationStore:
    return InMemoryConfigurationStore(
        models=[
            ConsensusCore.model("gpt", "openai", capabilities=["finance"], priority=3),
            ConsensusCore.model("claude", "anthropic", capabilities=["finance"], priority=3),
            ConsensusCore.model("gemini", "google", capabilities=["finance"], priority=2),
        ],
        rules=rules if rules is not None else [payment_rule()],
        **kwargs,
    )


def payment_request(**overrides: Any) -> ConsensusRequest:
    data: Dict[str, Any] = {
        "content": "Approve invoice #2231 for 12,400 EUR engine overhaul",
        "module": "maintenance",
        "action_type": "approve_payment",
        "session_id": "session-42",
    }
    data.update(overrides)
    return ConsensusCore.request(**data)


class TestConsensusCore:
    """Test suite for ConsensusCore facade and the engine it builds."""

    @pytest.fixture
    def metrics(self) -> InMemoryMetricsRecorder:
        return InMemoryMetricsRecorder()

    def test_engine_is_typed_call(self) -> None:
        engine = ConsensusCore.engine(make_store(), MockInstructorModelInvoker({}))

        assert isinstance(engine, ConsensusEngine)
        assert isinstance(engine, ArityOneTypedCall)
        assert engine.settings == ConsensusSettings()

    def test_rule_factory_validates(self) -> None:
        with pytest.raises(InvalidRuleConfiguration):
            ConsensusCore.rule(
                id="broken",
                module="maintenance",
                action_type="*",
                required_agreement_threshold=0.9,
                human_approval_threshold=0.5,
                auto_execute_threshold=0.95,
            )

    def test_workflow_factory_validates(self) -> None:
        with pytest.raises(InvalidWorkflowConfiguration):
            ConsensusCore.workflow(id="wf", module="charter", trigger_type="*", model_chain=[])

    def test_custom_strategy_requires_factory(self) -> None:
        with pytest.raises(ValueError):
            ConsensusCore.engine(
                make_store(),
                MockInstructorModelInvoker({}),
                settings=ConsensusSettings(comparison_strategy=ComparisonStrategy.CUSTOM),
            )

    @pytest.mark.anyio
    async def test_unanimous_request_auto_executes(self, metrics: InMemoryMetricsRecorder) -> None:
        invoker = MockInstructorModelInvoker({"gpt": "Approve", "claude": "approve", "gemini": "Approve."})
        engine = ConsensusCore.engine(make_store(), invoker, metrics=metrics)

        result = await engine.call(payment_request())

        metadata = result.consensus_metadata
        assert result.confidence == 1.0
        assert metadata.execution_decision == ExecutionDecision.AUTO_EXECUTE
        assert metadata.rule_id == "maintenance-approve-payment"
        assert metadata.risk_assessment == RiskLevel.CRITICAL
        assert metadata.session_id == "session-42"
        assert metadata.workflow_id is None
        assert sorted(metadata.models_used) == ["claude", "gemini", "gpt"]
        assert len(metrics.metrics) == 3

    @pytest.mark.anyio
    async def test_partial_agreement_requires_human_approval(self) -> None:
        invoker = MockInstructorModelInvoker({"gpt": "Approve", "claude": "Approve", "gemini": "Reject"})
        engine = ConsensusCore.engine(make_store(), invoker)

        result = await engine.call(payment_request())

        assert result.confidence == pytest.approx(0.8)
        assert result.consensus == "Approve"
        assert result.consensus_metadata.execution_decision == ExecutionDecision.HUMAN_APPROVAL_REQUIRED

    @pytest.mark.anyio
    async def test_total_disagreement_is_rejected(self) -> None:
        invoker = MockInstructorModelInvoker({"gpt": "Approve", "claude": "Reject", "gemini": "Defer"})
        engine = ConsensusCore.engine(make_store(), invoker)

        result = await engine.call(payment_request())

        assert result.consensus_metadata.execution_decision == ExecutionDecision.REJECTED

    @pytest.mark.anyio
    async def test_insufficient_quorum(self) -> None:
        invoker = MockInstructorModelInvoker(
            {"gpt": "Approve", "claude": "Approve", "gemini": ScriptedReply(output=None, error_kind="rate_limit")}
        )
        engine = ConsensusCore.engine(make_store(), invoker)

        with pytest.raises(InsufficientQuorum) as exc_info:
            await engine.call(payment_request())

        assert exc_info.value.available == 2

    @pytest.mark.anyio
    async def test_no_applicable_rule(self) -> None:
        engine = ConsensusCore.engine(make_store(), MockInstructorModelInvoker({}))

        with pytest.raises(NoApplicableRule):
            await engine.call(payment_request(module="finance"))

    @pytest.mark.anyio
    async def test_request_budget_exceeded(self) -> None:
        slow = ScriptedReply(output="Approve", delay_seconds=5.0)
        invoker = MockInstructorModelInvoker({"gpt": slow, "claude": slow, "gemini": slow})
        settings = ConsensusSettings(request_budget_seconds=0.1, default_invocation_timeout_seconds=10.0)
        engine = ConsensusCore.engine(make_store(), invoker, settings=settings)

        with pytest.raises(RequestTimeout) as exc_info:
            await engine.call(payment_request())

        assert exc_info.value.budget_seconds == 0.1

    @pytest.mark.anyio
    async def test_rule_override(self) -> None:
        strict = ConsensusCore.rule(
            id="board-approval",
            module="finance",
            action_type="*",
            required_agreement_threshold=0.9,
            human_approval_threshold=0.95,
            auto_execute_threshold=1.0,
            minimum_models_required=2,
        )
        invoker = MockInstructorModelInvoker({"gpt": "Approve", "claude": "Approve", "gemini": "Reject"})
        engine = ConsensusCore.engine(make_store([payment_rule(), strict]), invoker)

        result = await engine.call(payment_request(rule_override_id="board-approval"))

        assert result.consensus_metadata.rule_id == "board-approval"
        assert result.consensus_metadata.execution_decision == ExecutionDecision.REJECTED

    @pytest.mark.anyio
    async def test_workflow_runs_with_bound_rule(self) -> None:
        global_rule = ConsensusCore.rule(
            id="global-default",
            module="global",
            action_type="*",
            required_agreement_threshold=0.5,
            human_approval_threshold=0.6,
            auto_execute_threshold=0.8,
            minimum_models_required=2,
        )
        workflow = ConsensusCore.workflow(
            id="charter-pricing",
            module="charter",
            trigger_type="set_price",
            consensus_rule_id="global-default",
            model_chain=[
                {"models": ["gpt"], "parallel": False, "purpose": "Draft a price"},
                {"models": ["claude", "gemini"], "parallel": True, "purpose": "Review the price"},
            ],
        )
        invoker = MockInstructorModelInvoker({"gpt": "4200 EUR", "claude": "4200 EUR", "gemini": "4200 EUR"})
        engine = ConsensusCore.engine(make_store([payment_rule(), global_rule], workflows=[workflow]), invoker)

        result = await engine.call(
            ConsensusCore.request(
                content="Weekly rate for Lady Aurora", module="charter", action_type="set_price", session_id="s-7"
            )
        )

        metadata = result.consensus_metadata
        assert metadata.workflow_id == "charter-pricing"
        assert metadata.rule_id == "global-default"
        assert [stage.parallel for stage in metadata.stages] == [False, True]
        assert metadata.execution_decision == ExecutionDecision.AUTO_EXECUTE
        assert result.consensus == "4200 EUR"

    @pytest.mark.anyio
    async def test_deactivated_model_not_invoked(self) -> None:
        store = make_store(rules=[payment_rule(minimum_models_required=2)])
        store.upsert(ConsensusCore.model("gemini", "google", capabilities=["finance"], is_active=False))
        invoker = MockInstructorModelInvoker({"gpt": "Approve", "claude": "Approve", "gemini": "Approve"})
        engine = ConsensusCore.engine(store, invoker)

        result = await engine.call(payment_request())

        assert "gemini" not in invoker.invoked_models()
        assert result.confidence == 1.0

    @pytest.mark.anyio
    async def test_requests_are_independent(self) -> None:
        """The same request evaluated twice yields the same decision."""
        invoker = MockInstructorModelInvoker({"gpt": "Approve", "claude": "Approve", "gemini": "Reject"})
        engine = ConsensusCore.engine(make_store(), invoker)

        first = await engine.call(payment_request())
        second = await engine.call(payment_request())

        assert first.confidence == second.confidence
        assert first.consensus_metadata.execution_decision == second.consensus_metadata.execution_decision
