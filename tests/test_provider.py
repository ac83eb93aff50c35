import pytest

from promptsmith.errors import ExecutionError, ProviderLookupError
from promptsmith.models import CompletionRequest
from promptsmith.provider import MockProvider, ProviderRegistry, resolve_vendor


@pytest.mark.parametrize(
    "model, vendor",
    [
        ("gpt-4o", "openai"),
        ("GPT-4o-mini", "openai"),
        ("o1-mini", "openai"),
        ("claude-sonnet", "anthropic"),
        ("gemini-1.5-pro", "google"),
        ("llama-3-70b", "groq"),
        ("mixtral-8x7b", "groq"),
        ("meta-llama/llama-3-70b", "openrouter"),
        ("gpt-4o/preview", "openai"),
        ("claude/x", "anthropic"),
        ("mystery", "unknown"),
    ],
)
def test_resolve_vendor(model, vendor):
    assert resolve_vendor(model) == vendor


def test_registry_get_for_model():
    openai = MockProvider(name="openai")
    registry = ProviderRegistry([openai])

    assert registry.get_for_model("gpt-4o") is openai
    assert registry.get("openai") is openai
    assert registry.get("anthropic") is None
    assert registry.names() == ["openai"]
    assert "openai" in registry
    assert len(registry) == 1


def test_registry_lookup_error_names_model_and_vendor():
    registry = ProviderRegistry()

    with pytest.raises(ProviderLookupError) as excinfo:
        registry.get_for_model("claude-haiku")

    assert str(excinfo.value) == "no provider registered for model claude-haiku (provider: anthropic)"
    assert excinfo.value.vendor == "anthropic"


def test_register_replaces_same_name():
    first, second = MockProvider(name="openai"), MockProvider(name="openai")
    registry = ProviderRegistry([first])
    registry.register(second)
    assert registry.get("openai") is second


@pytest.mark.asyncio
async def test_mock_provider_echoes_and_cycles_latencies():
    provider = MockProvider(latencies=[10.0, 20.0])
    request = CompletionRequest(model="gpt-4o", prompt="one two three")

    first = await provider.complete(request)
    second = await provider.complete(request)
    third = await provider.complete(request)

    assert first.content == "one two three"
    assert first.prompt_tokens == 3
    assert first.total_tokens == 6
    assert [first.latency_ms, second.latency_ms, third.latency_ms] == [10.0, 20.0, 10.0]
    assert len(provider.calls) == 3


@pytest.mark.asyncio
async def test_mock_provider_fails_on_selected_calls():
    provider = MockProvider(reply="ok", fail_on={1}, costs=[0.5])
    request = CompletionRequest(model="gpt-4o", prompt="hi")

    assert (await provider.complete(request)).cost == 0.5
    with pytest.raises(ExecutionError, match="mock completion failed"):
        await provider.complete(request)
    assert (await provider.complete(request)).content == "ok"


@pytest.mark.asyncio
async def test_registry_context_enters_and_exits_providers():
    events = []

    class Tracking(MockProvider):
        async def __aenter__(self):
            events.append(("enter", self.name))
            return self

        async def __aexit__(self, exc_type, exc, tb):
            events.append(("exit", self.name))

    registry = ProviderRegistry([Tracking(name="openai"), Tracking(name="anthropic")])
    async with registry:
        assert events == [("enter", "openai"), ("enter", "anthropic")]

    assert events[2:] == [("exit", "anthropic"), ("exit", "openai")]
