"""
Pricing calculations and free-tier lookup.

Handles cost computations for the supported generation models.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import Dict, FrozenSet, Tuple

from .token_counter import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model, in USD."""
    input_cost_per_1k: Decimal  # Cost per 1K input tokens
    output_cost_per_1k: Decimal  # Cost per 1K output tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table keyed by (provider, model)."""
    prices: Dict[Tuple[str, str], ModelPricing]
    free_tiers: Dict[str, FrozenSet[str]]

    def get_pricing(self, provider: str, model: str) -> ModelPricing:
        """Get pricing for a specific provider model.

        Args:
            provider: Provider identifier ("openai", "gemini")
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        key = (provider, model)
        if key not in self.prices:
            raise ValueError(f"Unsupported model: {provider}/{model}")
        return self.prices[key]

    def is_free_tier(self, provider: str, model: str) -> bool:
        """Whether the provider offers this model without charge."""
        return model in self.free_tiers.get(provider, frozenset())


# Fixed pricing table - no dynamic fetching
PRICING_TABLE = PricingTable(
    prices={
        ("openai", "gpt-4"): ModelPricing(
            input_cost_per_1k=Decimal("0.03"),
            output_cost_per_1k=Decimal("0.06")
        ),
        ("openai", "gpt-4-turbo"): ModelPricing(
            input_cost_per_1k=Decimal("0.01"),
            output_cost_per_1k=Decimal("0.03")
        ),
        ("openai", "gpt-3.5-turbo"): ModelPricing(
            input_cost_per_1k=Decimal("0.0015"),
            output_cost_per_1k=Decimal("0.002")
        ),
        ("openai", "gpt-3.5-turbo-16k"): ModelPricing(
            input_cost_per_1k=Decimal("0.003"),
            output_cost_per_1k=Decimal("0.004")
        ),
        ("gemini", "gemini-2.5-pro"): ModelPricing(
            input_cost_per_1k=Decimal("0.00125"),
            output_cost_per_1k=Decimal("0.005")
        ),
        ("gemini", "gemini-2.5-flash"): ModelPricing(
            input_cost_per_1k=Decimal("0.000075"),
            output_cost_per_1k=Decimal("0.0003")
        ),
        ("gemini", "gemini-flash-latest"): ModelPricing(
            input_cost_per_1k=Decimal("0.000075"),
            output_cost_per_1k=Decimal("0.0003")
        ),
    },
    free_tiers={
        "openai": frozenset({"gpt-3.5-turbo"}),
        "gemini": frozenset({"gemini-2.5-flash", "gemini-flash-latest"}),
    },
)


def calculate_cost(provider: str, model: str, usage: TokenUsage) -> Decimal:
    """Calculate total USD cost for model usage with conservative rounding.

    Args:
        provider: Provider identifier
        model: Model identifier
        usage: Token usage data

    Returns:
        Total cost rounded UP to 6 decimal places

    Raises:
        ValueError: If model is not supported
    """
    pricing = PRICING_TABLE.get_pricing(provider, model)

    input_cost = (Decimal(usage.input_tokens) / Decimal("1000")) * pricing.input_cost_per_1k
    output_cost = (Decimal(usage.output_tokens) / Decimal("1000")) * pricing.output_cost_per_1k

    # Always round UP so the ledger never under-reports spend
    total_cost = input_cost + output_cost
    return total_cost.quantize(Decimal("0.000001"), rounding=ROUND_UP)
