"""
Pricing calculations for provider models.

Per-million-token rates for every model the routing table can reach.
"""

import logging
from dataclasses import dataclass
from typing import Dict
from decimal import Decimal, ROUND_UP

from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

ONE_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_million: Decimal
    output_cost_per_million: Decimal


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]

    def __contains__(self, model: str) -> bool:
        return model in self.prices


def _price(input_rate: str, output_rate: str) -> ModelPricing:
    return ModelPricing(
        input_cost_per_million=Decimal(input_rate),
        output_cost_per_million=Decimal(output_rate),
    )


PRICING_TABLE = PricingTable({
    "deepseek-chat": _price("0.14", "0.28"),
    "deepseek-reasoner": _price("0.55", "2.19"),
    "gpt-4o": _price("2.50", "10.00"),
    "gpt-4o-mini": _price("0.15", "0.60"),
    "claude-sonnet-4-20250514": _price("3.00", "15.00"),
    "claude-haiku-3.5": _price("0.80", "4.00"),
    "gemini-2.0-flash": _price("0.10", "0.40"),
    "gemini-1.5-flash": _price("0.075", "0.30"),
    "gemini-1.5-pro": _price("1.25", "5.00"),
})

# Single completions cost fractions of a cent
COST_QUANTUM = Decimal("0.000001")


def calculate_cost(model: str, usage: TokenUsage) -> float:
    """Calculate total cost in USD with conservative rounding.

    Args:
        model: Model identifier
        usage: Token usage data

    Returns:
        Total cost rounded UP to 6 decimal places

    Raises:
        ValueError: If model is not supported
    """
    pricing = PRICING_TABLE.get_pricing(model)

    input_cost = (Decimal(usage.input_tokens) / ONE_MILLION) * pricing.input_cost_per_million
    output_cost = (Decimal(usage.output_tokens) / ONE_MILLION) * pricing.output_cost_per_million

    total_cost = input_cost + output_cost
    return float(total_cost.quantize(COST_QUANTUM, rounding=ROUND_UP))


def estimate_cost(model: str, usage: TokenUsage) -> float:
    """Like calculate_cost, but unknown models cost 0.0 instead of raising."""
    if model not in PRICING_TABLE:
        logger.warning("No pricing for model %s; recording cost as 0", model)
        return 0.0
    return calculate_cost(model, usage)


@dataclass(frozen=True)
class CostEstimate:
    """Pre-call cost estimate for budget checks."""
    model: str
    provider: str
    estimated_input_tokens: int
    estimated_output_tokens: int
    estimated_cost: float


def provider_for_model(model: str) -> str:
    """Infer the vendor from a model name."""
    if model.startswith("deepseek"):
        return "deepseek"
    if model.startswith("gpt"):
        return "openai"
    if model.startswith("claude"):
        return "anthropic"
    if model.startswith("gemini"):
        return "gemini"
    return "unknown"


def estimate_request_cost(model: str, input_tokens: int, output_tokens: int) -> CostEstimate:
    """Estimate what a call will cost before making it."""
    usage = TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)
    return CostEstimate(
        model=model,
        provider=provider_for_model(model),
        estimated_input_tokens=input_tokens,
        estimated_output_tokens=output_tokens,
        estimated_cost=estimate_cost(model, usage),
    )
