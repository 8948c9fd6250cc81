"""
Model Invoker backed by Instructor and an OpenAI-compatible endpoint.

Each AIModel is sent to the endpoint under its provider model name; the
response is parsed into ModelAnswer so that the engine receives an output
string plus the provider's own confidence when it reports one.
"""

import logging
import os
import time
from typing import Any, Optional

import instructor
import openai
from instructor.core import InstructorRetryException
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...consensus.internal.ConsensusErrors import ModelInvocationError
from ...consensus.internal.ConsensusProtocols import ModelInvoker
from ...consensus.internal.ConsensusTypes import AIModel, ModelInvocation

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (openai.APIConnectionError, openai.APITimeoutError)


class ModelAnswer(BaseModel):
    """Structured answer requested from every model."""

    output: str = Field(description="The answer to the task, stated concisely")
    confidence: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="How confident you are in the answer, between 0 and 1",
    )


class InstructorModelInvoker(ModelInvoker):
    """
    Production Model Invoker using Instructor.

    Transport errors are retried with exponential backoff; rate limits and
    unparseable responses fail immediately. All failures surface as
    ModelInvocationError with kind transport, rate_limit or invalid_response.
    """

    DEFAULT_MAX_RETRIES = 2
    DEFAULT_RETRY_MIN_WAIT = 200  # milliseconds
    DEFAULT_RETRY_MAX_WAIT = 2000  # milliseconds

    def __init__(
        self,
        completion: Optional[Any] = None,
        temperature: float = 0.2,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_min_wait: int = DEFAULT_RETRY_MIN_WAIT,
        retry_max_wait: int = DEFAULT_RETRY_MAX_WAIT,
    ) -> None:
        """
        Initialize the invoker.

        Args:
            completion: Instructor client. Defaults to one built from YACHTIE_LLM_BASE_URL / YACHTIE_LLM_API_KEY
            temperature: Default temperature, overridden by a model's ``parameters['temperature']``
            max_retries: Attempts for transient transport errors
            retry_min_wait: Minimum wait time between retries (milliseconds)
            retry_max_wait: Maximum wait time between retries (milliseconds)
        """
        self._client = completion or instructor.from_openai(
            AsyncOpenAI(
                base_url=os.environ.get("YACHTIE_LLM_BASE_URL", "http://localhost:3005/v1"),
                api_key=os.environ.get("YACHTIE_LLM_API_KEY", "nothing"),
            )
        )
        self.temperature = temperature
        self._max_retries = max_retries
        self._retry_min_wait = retry_min_wait
        self._retry_max_wait = retry_max_wait

    async def invoke(
        self,
        model: AIModel,
        prompt: str,
        context: Optional[str],
        timeout: float,
    ) -> ModelInvocation:
        messages = []
        if context:
            messages.append({"role": "system", "content": f"Context:\n{context}"})
        messages.append({"role": "user", "content": prompt})

        retry_decorator = retry(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(min=self._retry_min_wait / 1000, max=self._retry_max_wait / 1000),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        @retry_decorator
        async def create() -> Any:
            return await self._client.chat.completions.create_with_completion(
                model=model.provider_model_name,
                messages=messages,
                response_model=ModelAnswer,
                temperature=model.parameters.get("temperature", self.temperature),
                timeout=timeout,
            )

        start = time.perf_counter()
        try:
            answer, completion = await create()
        except openai.RateLimitError as e:
            raise ModelInvocationError(model.id, ModelInvocationError.RATE_LIMIT, str(e)) from e
        except (InstructorRetryException, ValidationError) as e:
            raise ModelInvocationError(model.id, ModelInvocationError.INVALID_RESPONSE, str(e)) from e
        except openai.OpenAIError as e:
            raise ModelInvocationError(model.id, ModelInvocationError.TRANSPORT, str(e)) from e

        usage = getattr(completion, "usage", None)
        return ModelInvocation(
            output=answer.output,
            provider_confidence=answer.confidence,
            latency_ms=(time.perf_counter() - start) * 1000,
            tokens_used=getattr(usage, "total_tokens", None),
        )
