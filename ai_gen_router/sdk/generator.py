"""
End-to-end generation client.

Wires classification, model selection, fallback orchestration, usage
tracking and the optional feedback loop behind one entry point.
"""

from dataclasses import replace
from typing import Optional

from ..config.loader import DEFAULT_MAX_ITERATIONS, DEFAULT_TIMEOUT_SECONDS, ModelConfig, get_model_config
from ..core.feedback_loop import FeedbackLoopController, FeedbackLoopResult, Validator
from ..core.orchestrator import FallbackOrchestrator, GenerationAttemptResult, GenerationBackend
from ..core.prompts import GenerationRequest, build_generation_messages, extract_content
from ..core.selector import ModelSelection, select_model
from ..core.usage_tracker import UsageTracker, get_usage_tracker
from .openai_client import OpenAIBackend


class GenerationClient:
    """Generation client with model routing and usage tracking.

    Every terminal outcome is recorded in the usage tracker; cancelled
    requests are not.
    """

    def __init__(
        self,
        backend: Optional[GenerationBackend] = None,
        config: Optional[ModelConfig] = None,
        tracker: Optional[UsageTracker] = None,
        timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the client.

        Args:
            backend: Generation backend (defaults to OpenAIBackend)
            config: Model configuration (defaults to the process-wide one)
            tracker: Usage tracker (defaults to the process-wide one)
            timeout_seconds: Per-call backend timeout
        """
        if backend is None:
            backend = OpenAIBackend()

        self.config = config or get_model_config()
        self.tracker = tracker or get_usage_tracker()
        self.orchestrator = FallbackOrchestrator(
            backend, tracker=self.tracker, timeout_seconds=timeout_seconds
        )

    def select(self, request: GenerationRequest) -> ModelSelection:
        """Select the model and parameters for a request."""
        return select_model(request.user_request, self.config)

    async def generate(self, request: GenerationRequest) -> GenerationAttemptResult:
        """Run one orchestrated generation.

        Args:
            request: Generation request

        Returns:
            Successful result with the generated code extracted

        Raises:
            GenerationError: If no tier produced content
        """
        selection = self.select(request)
        payload = build_generation_messages(request)
        result = await self.orchestrator.generate(selection, self.config, payload)
        return replace(result, content=extract_content(result.content or ""))

    async def generate_with_feedback(
        self,
        request: GenerationRequest,
        validator: Validator,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> FeedbackLoopResult:
        """Generate and refine until the validator accepts the content.

        Args:
            request: Generation request
            validator: Sync or async callable returning a ValidationOutcome
            max_iterations: Maximum generation attempts

        Returns:
            FeedbackLoopResult; never raises for generation failures
        """
        controller = FeedbackLoopController(self.orchestrator, max_iterations=max_iterations)
        return await controller.run(request, self.select(request), self.config, validator)
