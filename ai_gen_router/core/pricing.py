"""
Pricing calculations and rate management.

Handles cost estimation for every supported model tier.
"""

from dataclasses import dataclass
from typing import Dict
from decimal import Decimal, ROUND_UP

from .tiers import ModelTier
from .token_counter import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model tier."""
    input_per_million: float  # USD per 1M input tokens
    output_per_million: float  # USD per 1M output tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported model tiers."""
    prices: Dict[ModelTier, ModelPricing]

    def get_pricing(self, model: ModelTier) -> ModelPricing:
        """Get pricing for a specific model tier.

        Args:
            model: Model tier

        Returns:
            ModelPricing for the tier

        Raises:
            ValueError: If the tier has no pricing record
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]


# Fixed pricing table - no dynamic fetching, no defaults
PRICING_TABLE = PricingTable({
    ModelTier.GPT_5: ModelPricing(input_per_million=1.25, output_per_million=10.00),
    ModelTier.GPT_5_MINI: ModelPricing(input_per_million=0.25, output_per_million=2.00),
    ModelTier.GPT_5_NANO: ModelPricing(input_per_million=0.05, output_per_million=0.40),
    ModelTier.O3: ModelPricing(input_per_million=5.00, output_per_million=20.00),
    ModelTier.O3_MINI: ModelPricing(input_per_million=1.00, output_per_million=5.00),
    ModelTier.GPT_4O: ModelPricing(input_per_million=2.50, output_per_million=10.00),
})


def get_model_pricing(model: ModelTier) -> ModelPricing:
    """Get the pricing record for a model tier."""
    return PRICING_TABLE.get_pricing(model)


def estimate_cost(model: ModelTier, input_tokens: int, output_tokens: int) -> float:
    """Estimate the cost of one response.

    No rounding happens here; callers round for display only.

    Args:
        model: Model tier that produced the response
        input_tokens: Input tokens reported by the backend
        output_tokens: Output tokens reported by the backend

    Returns:
        Estimated cost in USD

    Raises:
        ValueError: If the tier has no pricing record
    """
    pricing = PRICING_TABLE.get_pricing(model)

    input_cost = input_tokens / 1_000_000 * pricing.input_per_million
    output_cost = output_tokens / 1_000_000 * pricing.output_per_million

    return input_cost + output_cost


def calculate_cost(model: ModelTier, usage: TokenUsage) -> float:
    """Estimate the cost of a :class:`TokenUsage`."""
    return estimate_cost(model, usage.input_tokens, usage.output_tokens)


def format_cost(cost: float, places: int = 4) -> str:
    """Format a cost for display with conservative rounding.

    Args:
        cost: Cost in USD
        places: Decimal places to keep

    Returns:
        Cost rounded UP to ``places`` decimals, prefixed with ``$``
    """
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(cost)).quantize(quantum, rounding=ROUND_UP)
    return f"${rounded:,}"
