"""
Iterative refinement.

Drives generate -> validate -> improve until an external validator accepts
the content or the iteration budget runs out.

State machine:
    Initial -> Generating -> Validating -> Done(success)
                               |  ^
                               v  |
                            Improving            (while iterations < max)
    Validating -> Done(failure)                  (budget exhausted)
    Generating/Improving -> Done(failure)        (orchestrator failure)
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from ai_gen_router.config.loader import DEFAULT_MAX_ITERATIONS, ModelConfig
from .errors import GenerationError
from .orchestrator import FallbackOrchestrator, GenerationAttemptResult
from .prompts import (
    GenerationRequest,
    ValidationOutcome,
    build_feedback_messages,
    build_generation_messages,
    extract_content,
)
from .selector import ModelSelection
from .tiers import ModelTier, ReasoningEffort

logger = logging.getLogger(__name__)

Validator = Callable[[str], Union[ValidationOutcome, Awaitable[ValidationOutcome]]]


@dataclass
class FeedbackLoopState:
    """Accumulated state of one feedback loop run.

    Created at loop start and threaded through every iteration.
    """
    content: Optional[str] = None
    iterations: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    last_result: Optional[GenerationAttemptResult] = None  # Produced ``content``
    last_feedback: Optional[str] = None
    attempts: List[GenerationAttemptResult] = field(default_factory=list)

    def record_attempt(self, result: GenerationAttemptResult) -> None:
        """Count one orchestrator call and accumulate what it consumed."""
        self.iterations += 1
        self.total_tokens += result.tokens_used
        self.total_cost += result.estimated_cost
        self.attempts.append(result)


@dataclass(frozen=True)
class FeedbackLoopResult:
    """Final result of a feedback loop run with its metadata."""
    success: bool
    content: Optional[str]
    error: Optional[str]
    iterations: int
    model: ModelTier
    reasoning_effort: Optional[ReasoningEffort]
    fallback_occurred: bool
    fallback_reason: Optional[str]
    original_model_attempted: Optional[ModelTier]
    tokens_used: int
    estimated_cost: float
    generation_time_ms: float
    validation_passed: bool
    validation_feedback: Optional[str] = None
    attempts: Tuple[GenerationAttemptResult, ...] = ()


class FeedbackLoopController:
    """Repeats generation until the validator accepts the content."""

    def __init__(self, orchestrator: FallbackOrchestrator, max_iterations: int = DEFAULT_MAX_ITERATIONS):
        """Initialize the controller.

        Args:
            orchestrator: Orchestrator used for every generation attempt
            max_iterations: Maximum generation attempts, the initial one included
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.orchestrator = orchestrator
        self.max_iterations = max_iterations

    async def run(
        self,
        request: GenerationRequest,
        selection: ModelSelection,
        config: ModelConfig,
        validator: Validator,
    ) -> FeedbackLoopResult:
        """Generate, validate and improve until done.

        Orchestrator failures never raise from here: a failed first
        attempt ends the loop without content, and a failed improvement
        ends it with the last good content.

        Args:
            request: Original generation request
            selection: Model selection used for every attempt
            config: Model configuration supplying the fallback chain
            validator: Sync or async callable returning a ValidationOutcome

        Returns:
            FeedbackLoopResult describing the final state
        """
        start = time.monotonic()
        state = FeedbackLoopState()

        # Initial -> Generating
        payload = build_generation_messages(request)
        try:
            result = await self.orchestrator.generate(selection, config, payload)
        except GenerationError as error:
            state.record_attempt(error.result)
            return self._finish(state, start, error.result, success=False, error=str(error))

        state.record_attempt(result)
        content = extract_content(result.content or "")
        if not content:
            return self._finish(state, start, result, success=False, error="No content generated")
        state.content = content
        state.last_result = result

        while True:
            # Generating -> Validating
            outcome = await _validate(validator, state.content)
            state.last_feedback = outcome.feedback

            if outcome.is_valid:
                return self._finish(state, start, state.last_result, success=True)

            if state.iterations >= self.max_iterations:
                logger.warning(
                    "Feedback loop hit max iterations (%d) without passing validation",
                    self.max_iterations,
                )
                error = f"Max iterations ({self.max_iterations}) reached."
                if outcome.feedback:
                    error = f"{error} Validation feedback: {outcome.feedback}"
                return self._finish(state, start, state.last_result, success=False, error=error)

            # Validating -> Improving
            payload = build_feedback_messages(request.user_request, state.content, outcome.feedback)
            try:
                result = await self.orchestrator.generate(selection, config, payload)
            except GenerationError as error:
                state.record_attempt(error.result)
                return self._finish(state, start, state.last_result, success=False, error=str(error))

            state.record_attempt(result)
            improved = extract_content(result.content or "")
            if not improved:
                return self._finish(
                    state, start, state.last_result, success=False,
                    error="Failed to improve content: no content generated",
                )
            state.content = improved
            state.last_result = result

    def _finish(
        self,
        state: FeedbackLoopState,
        start: float,
        source: GenerationAttemptResult,
        success: bool,
        error: Optional[str] = None,
    ) -> FeedbackLoopResult:
        # ``source`` is the attempt behind the returned content, or the
        # failed attempt when there is no content at all.
        return FeedbackLoopResult(
            success=success,
            content=state.content,
            error=error,
            iterations=state.iterations,
            model=source.model,
            reasoning_effort=source.reasoning_effort,
            fallback_occurred=source.fallback_occurred,
            fallback_reason=source.fallback_reason,
            original_model_attempted=source.original_model_attempted,
            tokens_used=state.total_tokens,
            estimated_cost=state.total_cost,
            generation_time_ms=(time.monotonic() - start) * 1000,
            validation_passed=success,
            validation_feedback=state.last_feedback,
            attempts=tuple(state.attempts),
        )


async def _validate(validator: Validator, content: str) -> ValidationOutcome:
    outcome: Any = validator(content)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome
