import pytest

from promptsmith.models import ModelPricing
from promptsmith.pricing import MODEL_PRICING, calculate_cost, lookup_pricing


def test_exact_match():
    assert lookup_pricing("gpt-4o") == ModelPricing(input=2.50, output=10.00)


def test_prefix_fallback_prefers_longest_key():
    """A dated gpt-4o-mini id must not be priced as gpt-4o."""
    assert lookup_pricing("gpt-4o-mini-2024-07-18") == MODEL_PRICING["gpt-4o-mini"]
    assert lookup_pricing("gpt-4o-2024-08-06") == MODEL_PRICING["gpt-4o"]


def test_unknown_model_has_no_price():
    assert lookup_pricing("mystery-model") is None
    assert calculate_cost("mystery-model", 1000, 1000) == 0.0


def test_calculate_cost():
    # 1M input at $0.15 plus 1M output at $0.60
    assert calculate_cost("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)
    assert calculate_cost("claude-sonnet", 1000, 500) == pytest.approx(0.003 + 0.0075)


def test_calculate_cost_with_override_table():
    table = {"vendor/model": ModelPricing(input=1.0, output=2.0)}
    assert calculate_cost("vendor/model", 1_000_000, 500_000, table) == pytest.approx(2.0)


def test_price_table_is_read_only():
    with pytest.raises(TypeError):
        MODEL_PRICING["free"] = ModelPricing(input=0, output=0)  # type: ignore[index]
