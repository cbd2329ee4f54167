"""
Model selection.

Combines the loaded model configuration with the request's complexity to
produce the parameters for one generation request.
"""

from dataclasses import dataclass
from typing import Optional

from ai_gen_router.config.loader import ModelConfig
from .classifier import classify
from .tiers import DiagramComplexity, ModelTier, ReasoningEffort


@dataclass(frozen=True)
class ModelSelection:
    """Model and parameters chosen for one generation request."""
    model: ModelTier
    reasoning_effort: Optional[ReasoningEffort]
    temperature: float
    max_tokens: int
    cost_multiplier: float  # Relative to baseline (1.0)


def select_model(request_text: str, config: ModelConfig) -> ModelSelection:
    """Select the model and parameters for a request.

    Simple requests on a reasoning-capable primary get minimal reasoning
    and a smaller token ceiling; complex requests get high reasoning, a
    lower temperature and a larger ceiling. Everything else uses the
    configured defaults.

    Args:
        request_text: Free-text generation request
        config: Active model configuration

    Returns:
        ModelSelection for the request
    """
    primary = config.primary
    complexity = classify(request_text)

    if primary.supports_reasoning_effort and complexity == DiagramComplexity.SIMPLE:
        return ModelSelection(
            model=primary,
            reasoning_effort=ReasoningEffort.MINIMAL,
            temperature=0.7,
            max_tokens=3000,
            cost_multiplier=0.7,
        )

    if primary.supports_reasoning_effort and complexity == DiagramComplexity.COMPLEX:
        return ModelSelection(
            model=primary,
            reasoning_effort=ReasoningEffort.HIGH,
            temperature=0.5,
            max_tokens=6000,
            cost_multiplier=1.3,
        )

    return ModelSelection(
        model=primary,
        reasoning_effort=config.reasoning_effort if primary.supports_reasoning_effort else None,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        cost_multiplier=1.0,
    )
