from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from contextlib import AsyncExitStack

from promptsmith.errors import ExecutionError, ProviderLookupError
from promptsmith.models import CompletionRequest, CompletionResponse
from promptsmith.pricing import calculate_cost

logger = logging.getLogger(__name__)

UNKNOWN_VENDOR = "unknown"

DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.7

# Checked in order against the lower-cased model id.
VENDOR_PREFIXES: tuple[tuple[str, str], ...] = (
    ("gpt-", "openai"),
    ("o1", "openai"),
    ("claude", "anthropic"),
    ("gemini", "google"),
    ("llama", "groq"),
    ("mixtral", "groq"),
)


def resolve_vendor(model: str) -> str:
    """Infer the vendor name for a model id.

    Ids matching no known prefix but of the form ``vendor/model`` are routed
    through OpenRouter.
    """
    model = model.lower()
    for prefix, vendor in VENDOR_PREFIXES:
        if model.startswith(prefix):
            return vendor
    if "/" in model:
        return "openrouter"
    return UNKNOWN_VENDOR


class Provider(ABC):
    """One language-model backend.

    Subclasses set ``name`` to the vendor name that ``resolve_vendor`` returns
    for the models they serve. Providers holding network resources open them in
    ``__aenter__`` and release them in ``__aexit__``.
    """

    name: str

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Run one completion. Raises ExecutionError on transport or vendor failure."""

    @abstractmethod
    def models(self) -> list[str]:
        ...

    def supports(self, model: str) -> bool:
        return model in self.models()

    async def __aenter__(self) -> Provider:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


class ProviderRegistry:
    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._providers: dict[str, Provider] = {}
        self._stack: AsyncExitStack | None = None
        for provider in providers:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        if provider.name in self._providers:
            logger.debug("Replacing provider %s", provider.name)
        self._providers[provider.name] = provider

    def get(self, name: str) -> Provider | None:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return list(self._providers)

    def providers(self) -> list[Provider]:
        return list(self._providers.values())

    def get_for_model(self, model: str) -> Provider:
        vendor = resolve_vendor(model)
        provider = self._providers.get(vendor)
        if provider is None:
            raise ProviderLookupError(model, vendor)
        return provider

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    async def __aenter__(self) -> ProviderRegistry:
        async with AsyncExitStack() as stack:
            for provider in self._providers.values():
                await stack.enter_async_context(provider)
            self._stack = stack.pop_all()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None


class MockProvider(Provider):
    """Deterministic provider that never touches the network.

    Replies with ``reply`` (or echoes the prompt when unset). Latencies and
    costs are taken in call order from the given sequences, cycling when they
    run out; costs default to the price table. Calls whose zero-based index is
    in ``fail_on`` raise ExecutionError.
    """

    def __init__(
        self,
        name: str = "mock",
        models: Sequence[str] = (),
        reply: str | None = None,
        latencies: Sequence[float] = (100.0,),
        costs: Sequence[float] | None = None,
        fail_on: Iterable[int] = (),
        error: str = "mock completion failed",
    ) -> None:
        self.name = name
        self._models = list(models)
        self.reply = reply
        self.latencies = list(latencies) or [0.0]
        self.costs = list(costs) if costs is not None else None
        self.fail_on = set(fail_on)
        self.error = error
        self.calls: list[CompletionRequest] = []

    def models(self) -> list[str]:
        return list(self._models)

    def supports(self, model: str) -> bool:
        return not self._models or model in self._models

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        idx = len(self.calls)
        self.calls.append(request)
        if idx in self.fail_on:
            raise ExecutionError(self.error)

        content = request.prompt if self.reply is None else self.reply
        prompt_tokens = len(request.prompt.split())
        output_tokens = len(content.split())
        if self.costs:
            cost = self.costs[idx % len(self.costs)]
        else:
            cost = calculate_cost(request.model, prompt_tokens, output_tokens)
        return CompletionResponse(
            content=content,
            model=request.model,
            prompt_tokens=prompt_tokens,
            output_tokens=output_tokens,
            total_tokens=prompt_tokens + output_tokens,
            latency_ms=self.latencies[idx % len(self.latencies)],
            cost=cost,
        )
