"""
Fallback orchestration.

Runs one generation request against the backend, walking the ordered
fallback chain on retryable failures and stopping at once on terminal
ones. Produces exactly one result per request: a successful
:class:`GenerationAttemptResult`, or a :class:`GenerationError` carrying a
failed one.

State machine:
    Attempting(model) -> Succeeded
    Attempting(model) -> Attempting(next model)   retryable failure
    Attempting(model) -> Exhausted                retryable, no next model
    Attempting(model) -> Failed                   terminal failure
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Protocol, Tuple

from ai_gen_router.config.loader import ModelConfig
from .errors import (
    BackendError,
    ErrorKind,
    FailureClass,
    FallbackExhaustedError,
    TerminalGenerationError,
    classify_failure,
)
from .pricing import calculate_cost, estimate_cost
from .selector import ModelSelection
from .tiers import ModelTier, ReasoningEffort
from .token_counter import TokenUsage

if TYPE_CHECKING:
    from .usage_tracker import UsageTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendResponse:
    """Content and token usage returned by a backend call."""
    content: str
    input_tokens: int
    output_tokens: int

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(self.input_tokens, self.output_tokens)


class GenerationBackend(Protocol):
    """External collaborator that performs one generation call.

    Implementations return a :class:`BackendResponse` or raise
    :class:`BackendError`.
    """

    async def invoke(
        self,
        model: ModelTier,
        reasoning_effort: Optional[ReasoningEffort],
        temperature: float,
        max_tokens: int,
        payload: Any,
    ) -> BackendResponse:
        ...


@dataclass(frozen=True)
class GenerationAttemptResult:
    """Terminal outcome of one orchestrated generation request.

    Model and reasoning effort always describe the tier that actually
    produced the response (or the last tier that failed).
    """
    model: ModelTier
    reasoning_effort: Optional[ReasoningEffort]
    success: bool
    tokens_in: int
    tokens_out: int
    latency_ms: float
    fallback_occurred: bool
    estimated_cost: float
    fallback_reason: Optional[str] = None
    original_model_attempted: Optional[ModelTier] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    content: Optional[str] = None

    @property
    def tokens_used(self) -> int:
        """Total tokens used (input + output)."""
        return self.tokens_in + self.tokens_out


def candidate_models(selection: ModelSelection, config: ModelConfig) -> Tuple[ModelTier, ...]:
    """Tiers to try, in order: the selected model, then the fallback chain."""
    return (selection.model,) + tuple(config.fallback_chain)


class FallbackOrchestrator:
    """Executes generation attempts through the configured fallback chain.

    Holds no per-request state, so one instance can serve concurrent
    requests. The only shared mutable state it touches is the optional
    usage tracker.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        tracker: Optional["UsageTracker"] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize the orchestrator.

        Args:
            backend: Generation backend to invoke
            tracker: Optional usage tracker that receives terminal outcomes
            timeout_seconds: Per-call timeout; expiry is a retryable failure
        """
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.backend = backend
        self.tracker = tracker
        self.timeout_seconds = timeout_seconds

    async def generate(
        self,
        selection: ModelSelection,
        config: ModelConfig,
        payload: Any,
    ) -> GenerationAttemptResult:
        """Generate content, falling back through the chain as needed.

        Args:
            selection: Model selection for the first attempt
            config: Model configuration supplying the fallback chain
            payload: Opaque request payload passed to the backend

        Returns:
            Successful GenerationAttemptResult

        Raises:
            TerminalGenerationError: A tier failed with a terminal error
            FallbackExhaustedError: Every tier failed with a retryable error
            asyncio.CancelledError: The caller cancelled; nothing is logged
        """
        candidates = candidate_models(selection, config)
        start = time.monotonic()
        fallback_reason = None
        original_model = None

        for index, model in enumerate(candidates):
            reasoning = selection.reasoning_effort if model.supports_reasoning_effort else None

            try:
                response = await self._invoke(model, reasoning, selection, payload)
                if not response.content.strip():
                    # A reasoning tier can spend its whole token ceiling on reasoning
                    raise BackendError(
                        f"{model.value} returned an empty response",
                        code="empty_response",
                        input_tokens=response.input_tokens,
                        output_tokens=response.output_tokens,
                    )
            except BackendError as error:
                failure = classify_failure(error)

                if failure is FailureClass.TERMINAL:
                    result = self._failed_result(
                        model, reasoning, error, start, ErrorKind.TERMINAL,
                        fallback_occurred=index > 0,
                        fallback_reason=fallback_reason,
                        original_model=original_model,
                    )
                    logger.warning("%s failed with terminal error: %s", model.value, error.message)
                    self._record(result)
                    raise TerminalGenerationError(
                        f"{model.value} failed: {error.message}", result, error
                    ) from error

                if index + 1 >= len(candidates):
                    result = self._failed_result(
                        model, reasoning, error, start, ErrorKind.EXHAUSTED,
                        fallback_occurred=index > 0,
                        fallback_reason=fallback_reason,
                        original_model=original_model,
                    )
                    logger.warning(
                        "All %d model(s) failed; last error from %s: %s",
                        len(candidates), model.value, error.message,
                    )
                    self._record(result)
                    raise FallbackExhaustedError(
                        f"All models in fallback chain failed. Last error: {error.message}",
                        result, error
                    ) from error

                fallback_reason = f"{model.value} failed: {error.message}"
                if original_model is None:
                    original_model = selection.model
                logger.warning(
                    "%s; falling back to %s", fallback_reason, candidates[index + 1].value
                )
                continue

            result = GenerationAttemptResult(
                model=model,
                reasoning_effort=reasoning,
                success=True,
                tokens_in=response.input_tokens,
                tokens_out=response.output_tokens,
                latency_ms=_elapsed_ms(start),
                fallback_occurred=index > 0,
                fallback_reason=fallback_reason,
                original_model_attempted=original_model,
                estimated_cost=calculate_cost(model, response.usage),
                content=response.content,
            )
            self._record(result)
            return result

        # candidates always holds at least the selected model
        raise AssertionError("fallback loop ended without an outcome")

    async def _invoke(
        self,
        model: ModelTier,
        reasoning: Optional[ReasoningEffort],
        selection: ModelSelection,
        payload: Any,
    ) -> BackendResponse:
        call = self.backend.invoke(
            model, reasoning, selection.temperature, selection.max_tokens, payload
        )
        if self.timeout_seconds is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise BackendError(
                f"Request to {model.value} timed out after {self.timeout_seconds:g}s",
                code="timeout",
            )

    def _failed_result(
        self,
        model: ModelTier,
        reasoning: Optional[ReasoningEffort],
        error: BackendError,
        start: float,
        kind: ErrorKind,
        fallback_occurred: bool,
        fallback_reason: Optional[str],
        original_model: Optional[ModelTier],
    ) -> GenerationAttemptResult:
        tokens_in = error.input_tokens or 0
        tokens_out = error.output_tokens or 0
        return GenerationAttemptResult(
            model=model,
            reasoning_effort=reasoning,
            success=False,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=_elapsed_ms(start),
            fallback_occurred=fallback_occurred,
            fallback_reason=fallback_reason,
            original_model_attempted=original_model,
            estimated_cost=estimate_cost(model, tokens_in, tokens_out),
            error_kind=kind,
            error_message=error.message,
        )

    def _record(self, result: GenerationAttemptResult) -> None:
        if self.tracker is not None:
            self.tracker.log_result(result)


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
