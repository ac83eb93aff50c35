from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol

from promptsmith.models import CompletionRequest
from promptsmith.provider import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, ProviderRegistry
from promptsmith.values import Value

logger = logging.getLogger(__name__)

DEFAULT_LIVE_MODEL = "gpt-4o-mini"


class OutputExecutor(Protocol):
    async def execute(self, rendered: str, inputs: Mapping[str, Value]) -> str:
        ...


class EchoExecutor:
    """Returns the rendered prompt as the output, so runs are deterministic offline."""

    async def execute(self, rendered: str, inputs: Mapping[str, Value]) -> str:
        return rendered


class ProviderExecutor:
    """Sends the rendered prompt to a live model through the registry."""

    def __init__(
        self,
        registry: ProviderRegistry,
        model: str = DEFAULT_LIVE_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self.registry = registry
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def execute(self, rendered: str, inputs: Mapping[str, Value]) -> str:
        provider = self.registry.get_for_model(self.model)
        request = CompletionRequest(
            model=self.model,
            prompt=rendered,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            variables=dict(inputs),
        )
        response = await provider.complete(request)
        logger.debug(
            "%s answered in %.0fms (%d tokens)",
            self.model,
            response.latency_ms,
            response.total_tokens,
        )
        return response.content
