"""
Model tiers and the enumerations shared across the router.
"""

from enum import Enum


class ReasoningEffort(Enum):
    """How much "thinking" a reasoning-capable tier does before responding."""
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DiagramComplexity(Enum):
    """Complexity classification of a generation request."""
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class ModelTier(Enum):
    """Backend model variants the router can dispatch to."""
    GPT_5 = "gpt-5"            # Flagship reasoning model
    GPT_5_MINI = "gpt-5-mini"
    GPT_5_NANO = "gpt-5-nano"
    O3 = "o3"                  # Advanced reasoning model
    O3_MINI = "o3-mini"
    GPT_4O = "gpt-4o"          # Legacy model, no reasoning control

    @property
    def supports_reasoning_effort(self) -> bool:
        """Only the GPT-5 and o3 families accept a reasoning effort."""
        return self.value.startswith("gpt-5") or self.value.startswith("o3")


def parse_model_tier(value: str) -> ModelTier:
    """Parse a tier name such as ``"o3-mini"``.

    Raises:
        ValueError: If the name is not a known tier
    """
    try:
        return ModelTier(value.strip().lower())
    except ValueError:
        valid = [tier.value for tier in ModelTier]
        raise ValueError(f"Unsupported model: {value} (expected one of: {valid})")


def parse_reasoning_effort(value: str) -> ReasoningEffort:
    """Parse a reasoning effort name such as ``"high"``.

    Raises:
        ValueError: If the name is not a known effort level
    """
    try:
        return ReasoningEffort(value.strip().lower())
    except ValueError:
        valid = [effort.value for effort in ReasoningEffort]
        raise ValueError(f"Invalid reasoning effort: {value} (expected one of: {valid})")
