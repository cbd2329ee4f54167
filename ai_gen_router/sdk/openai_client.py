"""
OpenAI generation backend.

Adapts the async OpenAI client to the router's backend contract: one chat
completion per call, OpenAI errors translated into BackendError.
"""

from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ..core.errors import BackendError
from ..core.orchestrator import BackendResponse
from ..core.tiers import ModelTier, ReasoningEffort


class OpenAIBackend:
    """Generation backend backed by OpenAI chat completions.

    Reasoning-capable tiers receive ``reasoning_effort`` and
    ``max_completion_tokens``; other tiers receive ``temperature`` and
    ``max_tokens``. Failures are loud: every OpenAI error surfaces as a
    BackendError for the orchestrator to classify.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, **client_kwargs: Any):
        """Initialize the backend.

        Args:
            client: Pre-built AsyncOpenAI client (optional)
            **client_kwargs: Passed to AsyncOpenAI when no client is given
        """
        self.client = client or AsyncOpenAI(**client_kwargs)

    async def invoke(
        self,
        model: ModelTier,
        reasoning_effort: Optional[ReasoningEffort],
        temperature: float,
        max_tokens: int,
        payload: List[Dict[str, str]],
    ) -> BackendResponse:
        """Create one chat completion.

        Args:
            model: Model tier to call
            reasoning_effort: Reasoning effort, for tiers that support it
            temperature: Sampling temperature
            max_tokens: Maximum output tokens (reasoning included)
            payload: Chat messages

        Returns:
            BackendResponse with content and token usage

        Raises:
            ValueError: If messages is empty
            BackendError: If the OpenAI call fails or usage is missing
        """
        if not payload:
            raise ValueError("messages is required and cannot be empty")

        params: Dict[str, Any] = {"model": model.value, "messages": payload}
        if model.supports_reasoning_effort:
            params["max_completion_tokens"] = max_tokens
            if reasoning_effort is not None:
                params["reasoning_effort"] = reasoning_effort.value
        else:
            params["temperature"] = temperature
            params["max_tokens"] = max_tokens

        try:
            response = await self.client.chat.completions.create(**params)
        except openai.APITimeoutError as e:
            raise BackendError(str(e) or "Request timed out", code="timeout") from e
        except openai.APIConnectionError as e:
            raise BackendError(str(e) or "Connection error", code="connection_error") from e
        except openai.APIStatusError as e:
            raise BackendError(e.message, status_code=e.status_code, code=e.code) from e

        usage = response.usage
        if not usage:
            raise BackendError("OpenAI response missing usage information", code="missing_usage")

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        return BackendResponse(
            content=content,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens
        )
