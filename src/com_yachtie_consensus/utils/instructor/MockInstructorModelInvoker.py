"""
Scripted Model Invoker for tests, demos and dry runs.

Returns predefined answers, failures and delays per model id without making
real API calls.
"""

from typing import Dict, List, Optional, Sequence, Union

import anyio
from pydantic import BaseModel, Field

from ...consensus.internal.ConsensusErrors import ModelInvocationError
from ...consensus.internal.ConsensusProtocols import ModelInvoker
from ...consensus.internal.ConsensusTypes import AIModel, ModelInvocation


class ScriptedReply(BaseModel):
    """One scripted answer or failure."""

    output: Optional[str] = Field(default=None, description="Answer text; None means the call fails")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Provider confidence")
    latency_ms: float = Field(default=100.0, ge=0.0, description="Reported latency")
    tokens_used: Optional[int] = Field(default=None, ge=0, description="Reported token usage")
    delay_seconds: float = Field(default=0.0, ge=0.0, description="Real time to wait before answering")
    error_kind: str = Field(default=ModelInvocationError.TRANSPORT, description="Failure kind when output is None")


class InvocationLogEntry(BaseModel):
    """A call the mock received."""

    model_id: str
    prompt: str
    context: Optional[str] = None
    timeout: float


class MockInstructorModelInvoker(ModelInvoker):
    """
    Model Invoker that replays scripted replies.

    Each model id maps to one reply or a list of replies cycled call by call.
    A plain string is shorthand for a successful reply with that output.
    Unknown models fail with a transport error.
    """

    def __init__(self, replies: Dict[str, Union[str, ScriptedReply, Sequence[Union[str, ScriptedReply]]]]) -> None:
        self._replies: Dict[str, List[ScriptedReply]] = {}
        for model_id, reply in replies.items():
            scripted = [reply] if isinstance(reply, (str, ScriptedReply)) else list(reply)
            self._replies[model_id] = [ScriptedReply(output=r) if isinstance(r, str) else r for r in scripted]
        self._call_counts: Dict[str, int] = {}
        self.calls: List[InvocationLogEntry] = []

    async def invoke(
        self,
        model: AIModel,
        prompt: str,
        context: Optional[str],
        timeout: float,
    ) -> ModelInvocation:
        self.calls.append(InvocationLogEntry(model_id=model.id, prompt=prompt, context=context, timeout=timeout))

        replies = self._replies.get(model.id)
        if not replies:
            raise ModelInvocationError(model.id, ModelInvocationError.TRANSPORT, "no scripted reply")

        # Cycle through scripted replies
        count = self._call_counts.get(model.id, 0)
        reply = replies[count % len(replies)]
        self._call_counts[model.id] = count + 1

        if reply.delay_seconds:
            await anyio.sleep(reply.delay_seconds)
        if reply.output is None:
            raise ModelInvocationError(model.id, reply.error_kind, "scripted failure")

        return ModelInvocation(
            output=reply.output,
            provider_confidence=reply.confidence,
            latency_ms=reply.latency_ms,
            tokens_used=reply.tokens_used,
        )

    def invoked_models(self) -> List[str]:
        return [entry.model_id for entry in self.calls]

    def reset_call_count(self) -> None:
        """Reset the call counters to start from the first reply again."""
        self._call_counts.clear()
        self.calls.clear()
