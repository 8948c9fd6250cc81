"""
Tests for InstructorModelInvoker with a mocked Instructor client.
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from instructor.core import InstructorRetryException

from com_yachtie_consensus.consensus.internal.ConsensusErrors import ModelInvocationError
from com_yachtie_consensus.consensus.internal.ConsensusProtocols import ModelInvoker
from com_yachtie_consensus.consensus.internal.ConsensusTypes import AIModel
from com_yachtie_consensus.utils.instructor.InstructorModelInvoker import InstructorModelInvoker, ModelAnswer

REQUEST = httpx.Request("POST", "http://llm.local/v1/chat/completions")


def completion_with_usage(total_tokens: int) -> MagicMock:
    completion = MagicMock()
    completion.usage.total_tokens = total_tokens
    return completion


class TestInstructorModelInvoker:
    """Test suite for InstructorModelInvoker."""

    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock()
        client.chat.completions.create_with_completion = AsyncMock()
        return client

    @pytest.fixture
    def model(self) -> AIModel:
        return AIModel(id="fast-gpt", provider="openai", model_name="gpt-4o-mini", parameters={"temperature": 0.0})

    def invoker(self, client: Any) -> InstructorModelInvoker:
        return InstructorModelInvoker(completion=client, max_retries=2, retry_min_wait=1, retry_max_wait=2)

    def test_is_model_invoker(self, client: MagicMock) -> None:
        assert isinstance(self.invoker(client), ModelInvoker)

    @pytest.mark.anyio
    async def test_successful_invocation(self, client: MagicMock, model: AIModel) -> None:
        client.chat.completions.create_with_completion.return_value = (
            ModelAnswer(output="Approve", confidence=0.8),
            completion_with_usage(321),
        )

        invocation = await self.invoker(client).invoke(model, "Approve invoice?", "Budget: 15k", timeout=3.0)

        assert invocation.output == "Approve"
        assert invocation.provider_confidence == 0.8
        assert invocation.tokens_used == 321
        kwargs = client.chat.completions.create_with_completion.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.0
        assert kwargs["timeout"] == 3.0
        assert kwargs["response_model"] is ModelAnswer
        assert kwargs["messages"][0] == {"role": "system", "content": "Context:\nBudget: 15k"}
        assert kwargs["messages"][-1] == {"role": "user", "content": "Approve invoice?"}

    @pytest.mark.anyio
    async def test_transport_errors_are_retried(self, client: MagicMock, model: AIModel) -> None:
        client.chat.completions.create_with_completion.side_effect = [
            openai.APIConnectionError(request=REQUEST),
            (ModelAnswer(output="Approve"), completion_with_usage(10)),
        ]

        invocation = await self.invoker(client).invoke(model, "Approve?", None, timeout=3.0)

        assert invocation.output == "Approve"
        assert client.chat.completions.create_with_completion.call_count == 2

    @pytest.mark.anyio
    async def test_persistent_transport_error(self, client: MagicMock, model: AIModel) -> None:
        client.chat.completions.create_with_completion.side_effect = openai.APIConnectionError(request=REQUEST)

        with pytest.raises(ModelInvocationError) as exc_info:
            await self.invoker(client).invoke(model, "Approve?", None, timeout=3.0)

        assert exc_info.value.kind == ModelInvocationError.TRANSPORT
        assert exc_info.value.model_id == "fast-gpt"

    @pytest.mark.anyio
    async def test_rate_limit_not_retried(self, client: MagicMock, model: AIModel) -> None:
        response = httpx.Response(429, request=REQUEST)
        client.chat.completions.create_with_completion.side_effect = openai.RateLimitError(
            "slow down", response=response, body=None
        )

        with pytest.raises(ModelInvocationError) as exc_info:
            await self.invoker(client).invoke(model, "Approve?", None, timeout=3.0)

        assert exc_info.value.kind == ModelInvocationError.RATE_LIMIT
        assert client.chat.completions.create_with_completion.call_count == 1

    @pytest.mark.anyio
    async def test_invalid_response(self, client: MagicMock, model: AIModel) -> None:
        client.chat.completions.create_with_completion.side_effect = InstructorRetryException(
            "could not parse", n_attempts=3, total_usage=0
        )

        with pytest.raises(ModelInvocationError) as exc_info:
            await self.invoker(client).invoke(model, "Approve?", None, timeout=3.0)

        assert exc_info.value.kind == ModelInvocationError.INVALID_RESPONSE
