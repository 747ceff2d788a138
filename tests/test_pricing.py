"""
Unit tests for pricing calculations.

Tests cost accuracy, rounding behavior, free tiers and error handling.
"""

import pytest
from decimal import Decimal

from market_brief.core.pricing import calculate_cost, PRICING_TABLE
from market_brief.core.token_counter import TokenUsage, ZERO_USAGE, estimate_tokens


class TestTokenUsage:
    """Test TokenUsage dataclass."""

    def test_total_tokens_calculation(self):
        """Verify total_tokens is computed correctly."""
        usage = TokenUsage(input_tokens=100, output_tokens=50)
        assert usage.total_tokens == 150

    def test_zero_tokens(self):
        """Verify zero token handling."""
        assert ZERO_USAGE.total_tokens == 0

    def test_negative_tokens_rejected(self):
        """Verify negative counts are rejected."""
        with pytest.raises(ValueError, match="input_tokens must be >= 0"):
            TokenUsage(input_tokens=-1, output_tokens=0)
        with pytest.raises(ValueError, match="output_tokens must be >= 0"):
            TokenUsage(input_tokens=0, output_tokens=-1)

    def test_addition_sums_each_field(self):
        """Verify usage addition keeps total == input + output."""
        total = TokenUsage(10, 5) + TokenUsage(3, 7)
        assert total == TokenUsage(13, 12)
        assert total.total_tokens == 25

    def test_estimate_rounds_up(self):
        """Verify the estimate is one token per four characters, rounded up."""
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestPricingTable:
    """Test pricing table functionality."""

    def test_get_supported_model(self):
        """Verify pricing retrieval for supported models."""
        gpt4_pricing = PRICING_TABLE.get_pricing("openai", "gpt-4")
        assert gpt4_pricing.input_cost_per_1k == Decimal("0.03")
        assert gpt4_pricing.output_cost_per_1k == Decimal("0.06")

    def test_unsupported_model_raises_error(self):
        """Verify error for unknown models."""
        with pytest.raises(ValueError, match="Unsupported model: openai/unknown-model"):
            PRICING_TABLE.get_pricing("openai", "unknown-model")

    def test_model_is_keyed_by_provider(self):
        """Verify a model name under the wrong provider is unknown."""
        with pytest.raises(ValueError):
            PRICING_TABLE.get_pricing("gemini", "gpt-4")

    def test_free_tier_lookup(self):
        """Verify free-tier models per provider."""
        assert PRICING_TABLE.is_free_tier("gemini", "gemini-2.5-flash")
        assert PRICING_TABLE.is_free_tier("gemini", "gemini-flash-latest")
        assert not PRICING_TABLE.is_free_tier("gemini", "gemini-2.5-pro")
        assert not PRICING_TABLE.is_free_tier("openai", "gpt-4")
        assert not PRICING_TABLE.is_free_tier("unknown", "gemini-2.5-flash")


class TestCostCalculation:
    """Test cost calculation accuracy and rounding."""

    def test_exact_cost_gpt4(self):
        """Verify exact cost calculation for GPT-4."""
        usage = TokenUsage(input_tokens=1000, output_tokens=500)
        cost = calculate_cost("openai", "gpt-4", usage)
        # Input: 1000/1000 * $0.03 = $0.03
        # Output: 500/1000 * $0.06 = $0.03
        assert cost == Decimal("0.060000")

    def test_exact_cost_gemini_pro(self):
        """Verify exact cost calculation for Gemini Pro."""
        usage = TokenUsage(input_tokens=2000, output_tokens=1000)
        cost = calculate_cost("gemini", "gemini-2.5-pro", usage)
        # 2 * 0.00125 + 1 * 0.005
        assert cost == Decimal("0.007500")

    def test_rounding_is_conservative(self):
        """Verify fractional costs round up, never down."""
        usage = TokenUsage(input_tokens=1, output_tokens=0)
        cost = calculate_cost("gemini", "gemini-2.5-flash", usage)
        # 0.001 * 0.000075 = 0.000000075 -> 0.000001
        assert cost == Decimal("0.000001")

    def test_zero_usage_costs_nothing(self):
        """Verify zero usage is free."""
        assert calculate_cost("openai", "gpt-4", ZERO_USAGE) == Decimal("0")

    def test_unsupported_model_raises_error(self):
        """Verify unknown models are rejected."""
        with pytest.raises(ValueError, match="Unsupported model"):
            calculate_cost("openai", "gpt-5", TokenUsage(1, 1))
