"""
Unit tests for the feedback loop controller.

Tests iteration counting, termination, accumulation of tokens and cost,
partial-progress handling and metadata fidelity.
"""

import asyncio

import pytest

from ai_gen_router.config.loader import ModelConfig
from ai_gen_router.core.errors import BackendError
from ai_gen_router.core.feedback_loop import FeedbackLoopController, FeedbackLoopState
from ai_gen_router.core.orchestrator import BackendResponse, FallbackOrchestrator
from ai_gen_router.core.pricing import estimate_cost
from ai_gen_router.core.prompts import GenerationRequest, ValidationOutcome
from ai_gen_router.core.selector import ModelSelection
from ai_gen_router.core.tiers import ModelTier, ReasoningEffort
from ai_gen_router.core.usage_tracker import UsageTracker


CONFIG = ModelConfig(
    primary=ModelTier.GPT_5,
    fallback_chain=(ModelTier.O3_MINI, ModelTier.GPT_4O),
    reasoning_effort=ReasoningEffort.MEDIUM,
    temperature=0.7,
    max_tokens=16000
)

SELECTION = ModelSelection(
    model=ModelTier.GPT_5,
    reasoning_effort=ReasoningEffort.MEDIUM,
    temperature=0.7,
    max_tokens=16000,
    cost_multiplier=1.0
)

REQUEST = GenerationRequest(user_request="Create a flowchart of the checkout process")


class SequenceBackend:
    """Backend returning scripted outcomes in call order.

    Each outcome is either a BackendResponse, a BackendError, or a dict
    mapping model tier to one of those.
    """

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def invoke(self, model, reasoning_effort, temperature, max_tokens, payload):
        self.calls.append((model, payload))
        outcome = self.outcomes[0]
        if isinstance(outcome, dict):
            outcome = outcome[model]
            if model == list(self.outcomes[0])[-1] or (
                isinstance(outcome, BackendResponse) and outcome.content.strip()
            ):
                self.outcomes.pop(0)
        else:
            self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def empty_on_every_tier():
    """Blank completions from every tier in the chain."""
    return {
        ModelTier.GPT_5: BackendResponse(content="", input_tokens=10, output_tokens=0),
        ModelTier.O3_MINI: BackendResponse(content="  ", input_tokens=10, output_tokens=0),
        ModelTier.GPT_4O: BackendResponse(content="", input_tokens=10, output_tokens=0),
    }


def response(version, input_tokens=100, output_tokens=200):
    """Create a backend response wrapping a numbered HTML document."""
    return BackendResponse(
        content=f"```html\n<html>v{version}</html>\n```",
        input_tokens=input_tokens,
        output_tokens=output_tokens
    )


class CountingValidator:
    """Validator that passes on a given call number (never if None)."""

    def __init__(self, pass_on=None):
        self.pass_on = pass_on
        self.seen = []

    def __call__(self, content):
        self.seen.append(content)
        if self.pass_on is not None and len(self.seen) >= self.pass_on:
            return ValidationOutcome(is_valid=True)
        return ValidationOutcome(is_valid=False, feedback=f"issue #{len(self.seen)}")


def run_loop(backend, validator, max_iterations=5, tracker=None):
    """Run the feedback loop to completion."""
    orchestrator = FallbackOrchestrator(backend, tracker=tracker)
    controller = FeedbackLoopController(orchestrator, max_iterations=max_iterations)
    return asyncio.run(controller.run(REQUEST, SELECTION, CONFIG, validator))


class TestFeedbackLoopTermination:
    """Test loop termination rules."""

    def test_valid_first_time(self):
        """Test a first-time pass needs one generation."""
        backend = SequenceBackend([response(1)])
        validator = CountingValidator(pass_on=1)

        result = run_loop(backend, validator)

        assert result.success is True
        assert result.validation_passed is True
        assert result.iterations == 1
        assert result.content == "<html>v1</html>"
        assert len(backend.calls) == 1

    def test_valid_on_second_call(self):
        """Test passing on the second validation stops after two generations."""
        backend = SequenceBackend([response(i) for i in range(1, 6)])
        validator = CountingValidator(pass_on=2)

        result = run_loop(backend, validator)

        assert result.success is True
        assert result.iterations == 2
        assert len(backend.calls) == 2
        assert result.content == "<html>v2</html>"
        assert validator.seen == ["<html>v1</html>", "<html>v2</html>"]

    def test_never_valid_exhausts_budget(self):
        """Test an always-invalid validator gets exactly max generations."""
        backend = SequenceBackend([response(i) for i in range(1, 10)])
        validator = CountingValidator()

        result = run_loop(backend, validator, max_iterations=5)

        assert result.success is False
        assert result.validation_passed is False
        assert result.iterations == 5
        assert len(backend.calls) == 5
        assert result.content == "<html>v5</html>"
        assert "Max iterations (5) reached" in result.error
        assert "issue #5" in result.error
        assert result.validation_feedback == "issue #5"

    def test_exhausted_without_feedback(self):
        """Test the error omits feedback when the validator gives none."""
        backend = SequenceBackend([response(1), response(2)])

        result = run_loop(backend, lambda content: ValidationOutcome(is_valid=False), max_iterations=2)

        assert result.success is False
        assert result.error == "Max iterations (2) reached."
        assert "None" not in result.error
        assert result.validation_feedback is None

    def test_max_iterations_one(self):
        """Test a budget of one means no improvement attempts."""
        backend = SequenceBackend([response(1), response(2)])

        result = run_loop(backend, CountingValidator(), max_iterations=1)

        assert result.success is False
        assert result.iterations == 1
        assert len(backend.calls) == 1

    def test_invalid_max_iterations(self):
        """Test a budget below one is rejected."""
        orchestrator = FallbackOrchestrator(SequenceBackend([]))
        with pytest.raises(ValueError, match="max_iterations"):
            FeedbackLoopController(orchestrator, max_iterations=0)


class TestFeedbackLoopPrompts:
    """Test what the improvement attempts send."""

    def test_improvement_embeds_content_and_feedback(self):
        """Test the improvement prompt carries the prior content and feedback."""
        backend = SequenceBackend([response(1), response(2)])

        run_loop(backend, CountingValidator(pass_on=2))

        _, improvement_payload = backend.calls[1]
        joined = "\n".join(message["content"] for message in improvement_payload)
        assert "<html>v1</html>" in joined
        assert "issue #1" in joined
        assert REQUEST.user_request in joined


class TestFeedbackLoopAccounting:
    """Test tokens, cost and metadata accumulation."""

    def test_tokens_and_cost_accumulate(self):
        """Test totals cover every generation attempt."""
        backend = SequenceBackend([response(1, 100, 200), response(2, 300, 400), response(3, 500, 600)])

        result = run_loop(backend, CountingValidator(pass_on=3))

        assert result.iterations == 3
        assert result.tokens_used == 2100
        expected = (
            estimate_cost(ModelTier.GPT_5, 100, 200)
            + estimate_cost(ModelTier.GPT_5, 300, 400)
            + estimate_cost(ModelTier.GPT_5, 500, 600)
        )
        assert result.estimated_cost == pytest.approx(expected)
        assert len(result.attempts) == 3

    def test_metadata_reports_model_that_produced_content(self):
        """Test metadata follows the tier behind the returned content."""
        backend = SequenceBackend([
            response(1),
            {
                ModelTier.GPT_5: BackendError("busy", status_code=503),
                ModelTier.O3_MINI: response(2),
            },
        ])

        result = run_loop(backend, CountingValidator(pass_on=2))

        assert result.success is True
        assert result.model == ModelTier.O3_MINI
        assert result.reasoning_effort == ReasoningEffort.MEDIUM
        assert result.fallback_occurred is True
        assert result.original_model_attempted == ModelTier.GPT_5

    def test_metadata_on_non_reasoning_fallback(self):
        """Test a gpt-4o fallback reports no reasoning effort."""
        backend = SequenceBackend([
            {
                ModelTier.GPT_5: BackendError("busy", status_code=503),
                ModelTier.O3_MINI: BackendError("busy", status_code=503),
                ModelTier.GPT_4O: response(1),
            },
        ])

        result = run_loop(backend, CountingValidator(pass_on=1))

        assert result.model == ModelTier.GPT_4O
        assert result.reasoning_effort is None

    def test_every_attempt_is_logged(self):
        """Test the tracker sees one record per generation."""
        tracker = UsageTracker()
        backend = SequenceBackend([response(i) for i in range(1, 4)])

        run_loop(backend, CountingValidator(), max_iterations=3, tracker=tracker)

        assert tracker.record_count() == 3


class TestFeedbackLoopFailures:
    """Test orchestrator failures inside the loop."""

    def test_initial_failure_ends_immediately(self):
        """Test a failed first generation is Done(failure) without content."""
        backend = SequenceBackend([BackendError("Invalid API key", status_code=401)])
        validator = CountingValidator(pass_on=1)

        result = run_loop(backend, validator)

        assert result.success is False
        assert result.content is None
        assert result.iterations == 1
        assert result.model == ModelTier.GPT_5
        assert "Invalid API key" in result.error
        assert validator.seen == []

    def test_initial_empty_content_ends_immediately(self):
        """Test blank responses from every tier are Done(failure)."""
        backend = SequenceBackend([empty_on_every_tier()])
        validator = CountingValidator(pass_on=1)

        result = run_loop(backend, validator)

        assert result.success is False
        assert result.content is None
        assert result.iterations == 1
        assert result.model == ModelTier.GPT_4O
        assert "empty response" in result.error
        assert len(backend.calls) == 3
        assert validator.seen == []

    def test_initial_empty_code_block_ends_immediately(self):
        """Test a response whose code block is empty is Done(failure)."""
        backend = SequenceBackend([
            BackendResponse(content="```html\n\n```", input_tokens=10, output_tokens=5),
        ])
        validator = CountingValidator(pass_on=1)

        result = run_loop(backend, validator)

        assert result.success is False
        assert result.content is None
        assert result.error == "No content generated"
        assert validator.seen == []

    def test_empty_response_falls_back_inside_loop(self):
        """Test a blank improvement from one tier is retried on the next."""
        backend = SequenceBackend([
            response(1),
            {
                ModelTier.GPT_5: BackendResponse(content="", input_tokens=50, output_tokens=3000),
                ModelTier.O3_MINI: response(2),
            },
        ])

        result = run_loop(backend, CountingValidator(pass_on=2))

        assert result.success is True
        assert result.content == "<html>v2</html>"
        assert result.model == ModelTier.O3_MINI
        assert result.fallback_occurred is True

    def test_improvement_failure_keeps_partial_content(self):
        """Test a failed improvement returns the last good content."""
        backend = SequenceBackend([
            response(1),
            response(2),
            BackendError("Blocked by content policy", status_code=400),
        ])

        result = run_loop(backend, CountingValidator())

        assert result.success is False
        assert result.content == "<html>v2</html>"
        assert result.iterations == 3
        assert result.model == ModelTier.GPT_5
        assert "content policy" in result.error
        assert len(result.attempts) == 3
        assert result.attempts[-1].success is False

    def test_improvement_empty_content_keeps_partial_content(self):
        """Test blank improvements from every tier return the last good content."""
        backend = SequenceBackend([response(1), empty_on_every_tier()])

        result = run_loop(backend, CountingValidator())

        assert result.success is False
        assert result.content == "<html>v1</html>"
        assert result.iterations == 2
        assert result.model == ModelTier.GPT_5


class TestAsyncValidator:
    """Test awaitable validators."""

    def test_async_validator(self):
        """Test an async validator is awaited."""
        seen = []

        async def validator(content):
            seen.append(content)
            return ValidationOutcome(is_valid=len(seen) == 2, feedback="fix it")

        backend = SequenceBackend([response(1), response(2)])

        result = run_loop(backend, validator)

        assert result.success is True
        assert result.iterations == 2


class TestFeedbackLoopState:
    """Test the loop state object."""

    def test_record_attempt(self):
        """Test an attempt updates every accumulator."""
        state = FeedbackLoopState()
        backend = SequenceBackend([response(1, 10, 20)])
        result = asyncio.run(FallbackOrchestrator(backend).generate(SELECTION, CONFIG, []))

        state.record_attempt(result)

        assert state.iterations == 1
        assert state.total_tokens == 30
        assert state.total_cost == result.estimated_cost
        assert state.attempts == [result]
