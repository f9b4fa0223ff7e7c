"""
Unit tests for pricing calculations.

Tests cost accuracy, rounding behavior, and error handling.
"""

import pytest
from decimal import Decimal

from llm_orchestrator.core.pricing import (
    PRICING_TABLE,
    calculate_cost,
    estimate_cost,
    estimate_request_cost,
    provider_for_model,
)
from llm_orchestrator.core.token_counter import TokenUsage


class TestTokenUsage:
    """Test TokenUsage dataclass."""

    def test_total_tokens_calculation(self):
        """Verify total_tokens is computed correctly."""
        usage = TokenUsage(input_tokens=100, output_tokens=50)
        assert usage.total_tokens == 150

    def test_zero_tokens(self):
        usage = TokenUsage()
        assert usage.total_tokens == 0
        assert usage.to_dict() == {"input": 0, "output": 0}

    def test_negative_tokens_rejected(self):
        with pytest.raises(ValueError, match="input_tokens must be >= 0"):
            TokenUsage(input_tokens=-1, output_tokens=0)
        with pytest.raises(ValueError, match="output_tokens must be >= 0"):
            TokenUsage(input_tokens=0, output_tokens=-1)


class TestPricingTable:
    """Test pricing table functionality."""

    def test_get_supported_model(self):
        """Verify pricing retrieval for supported models."""
        pricing = PRICING_TABLE.get_pricing("gpt-4o")
        assert pricing.input_cost_per_million == Decimal("2.50")
        assert pricing.output_cost_per_million == Decimal("10.00")

    def test_unsupported_model_raises_error(self):
        """Verify error for unknown models."""
        with pytest.raises(ValueError, match="Unsupported model: unknown-model"):
            PRICING_TABLE.get_pricing("unknown-model")

    def test_routed_models_are_priced(self):
        """Every default provider model has a price."""
        assert "deepseek-chat" in PRICING_TABLE
        assert "gpt-4o" in PRICING_TABLE


class TestCostCalculation:
    """Test cost calculation accuracy and rounding."""

    def test_exact_cost_gpt4o(self):
        usage = TokenUsage(input_tokens=1_000_000, output_tokens=1_000_000)
        # $2.50 + $10.00
        assert calculate_cost("gpt-4o", usage) == 12.5

    def test_exact_cost_deepseek(self):
        usage = TokenUsage(input_tokens=1000, output_tokens=500)
        # 1000/1M * $0.14 + 500/1M * $0.28 = $0.00028
        assert calculate_cost("deepseek-chat", usage) == 0.00028

    def test_rounding_up_behavior(self):
        """Verify costs round UP to the nearest millionth of a dollar."""
        usage = TokenUsage(input_tokens=1, output_tokens=0)
        # $0.00000015 -> $0.000001
        assert calculate_cost("gpt-4o-mini", usage) == 0.000001

    def test_zero_usage_costs_nothing(self):
        assert calculate_cost("gpt-4o", TokenUsage()) == 0.0

    def test_calculate_cost_unknown_model_raises(self):
        with pytest.raises(ValueError):
            calculate_cost("mystery-model", TokenUsage(1, 1))

    def test_estimate_cost_unknown_model_is_zero(self):
        """Unknown models are recorded at zero cost instead of failing the call."""
        assert estimate_cost("mystery-model", TokenUsage(1000, 1000)) == 0.0


class TestRequestEstimate:
    """Pre-call estimates."""

    @pytest.mark.parametrize("model,provider", [
        ("deepseek-chat", "deepseek"),
        ("gpt-4o-mini", "openai"),
        ("claude-haiku-3.5", "anthropic"),
        ("gemini-2.0-flash", "gemini"),
        ("llama-3", "unknown"),
    ])
    def test_provider_for_model(self, model, provider):
        assert provider_for_model(model) == provider

    def test_estimate_request_cost(self):
        estimate = estimate_request_cost("gpt-4o", 1_000_000, 0)
        assert estimate.provider == "openai"
        assert estimate.estimated_cost == 2.5
        assert estimate.estimated_input_tokens == 1_000_000
