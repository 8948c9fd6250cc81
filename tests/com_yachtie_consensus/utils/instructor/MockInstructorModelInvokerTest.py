"""
Tests for the scripted Model Invoker.
"""

import pytest

from com_yachtie_consensus.consensus.internal.ConsensusErrors import ModelInvocationError
from com_yachtie_consensus.consensus.internal.ConsensusTypes import AIModel
from com_yachtie_consensus.utils.instructor.MockInstructorModelInvoker import (
    MockInstructorModelInvoker,
    ScriptedReply,
)

GPT = AIModel(id="gpt", provider="openai")


class TestMockInstructorModelInvoker:
    @pytest.mark.anyio
    async def test_cycles_replies(self) -> None:
        invoker = MockInstructorModelInvoker({"gpt": ["Approve", ScriptedReply(output="Reject", confidence=0.4)]})

        first = await invoker.invoke(GPT, "p", None, 1.0)
        second = await invoker.invoke(GPT, "p", None, 1.0)
        third = await invoker.invoke(GPT, "p", None, 1.0)

        assert [first.output, second.output, third.output] == ["Approve", "Reject", "Approve"]
        assert second.provider_confidence == 0.4

        invoker.reset_call_count()
        assert invoker.calls == []
        assert (await invoker.invoke(GPT, "p", None, 1.0)).output == "Approve"

    @pytest.mark.anyio
    async def test_scripted_failure(self) -> None:
        invoker = MockInstructorModelInvoker({"gpt": ScriptedReply(output=None, error_kind="rate_limit")})

        with pytest.raises(ModelInvocationError) as exc_info:
            await invoker.invoke(GPT, "p", None, 1.0)

        assert exc_info.value.kind == "rate_limit"

    @pytest.mark.anyio
    async def test_unscripted_model_fails(self) -> None:
        with pytest.raises(ModelInvocationError):
            await MockInstructorModelInvoker({}).invoke(GPT, "p", None, 1.0)
