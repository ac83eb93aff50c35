from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from promptsmith.models import ModelPricing

# Approximate list prices, USD per 1M tokens.
MODEL_PRICING: Mapping[str, ModelPricing] = MappingProxyType(
    {
        # OpenAI
        "gpt-4o": ModelPricing(input=2.50, output=10.00),
        "gpt-4o-mini": ModelPricing(input=0.15, output=0.60),
        "gpt-4-turbo": ModelPricing(input=10.00, output=30.00),
        "o1": ModelPricing(input=15.00, output=60.00),
        "o1-mini": ModelPricing(input=3.00, output=12.00),
        # Anthropic
        "claude-3-5-sonnet-20241022": ModelPricing(input=3.00, output=15.00),
        "claude-sonnet-4-20250514": ModelPricing(input=3.00, output=15.00),
        "claude-3-5-haiku-20241022": ModelPricing(input=0.80, output=4.00),
        "claude-3-opus-20240229": ModelPricing(input=15.00, output=75.00),
        "claude-sonnet": ModelPricing(input=3.00, output=15.00),
        "claude-haiku": ModelPricing(input=0.80, output=4.00),
        "claude-opus": ModelPricing(input=15.00, output=75.00),
        # Google
        "gemini-1.5-pro": ModelPricing(input=1.25, output=5.00),
        "gemini-1.5-flash": ModelPricing(input=0.075, output=0.30),
        "gemini-2.0-flash": ModelPricing(input=0.10, output=0.40),
    }
)


def lookup_pricing(
    model: str,
    pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
) -> ModelPricing | None:
    """Find the price for a model id, falling back to the longest known prefix.

    Dated or versioned ids such as ``gpt-4o-2024-08-06`` share the price of
    their base entry.
    """
    model_pricing = pricing.get(model)
    if model_pricing is not None:
        return model_pricing
    prefixes = [key for key in pricing if model.startswith(key)]
    if not prefixes:
        return None
    return pricing[max(prefixes, key=len)]


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
) -> float:
    model_pricing = lookup_pricing(model, pricing)
    if model_pricing is None:
        return 0.0
    input_cost = input_tokens * model_pricing.input / 1_000_000
    output_cost = output_tokens * model_pricing.output / 1_000_000
    return input_cost + output_cost
