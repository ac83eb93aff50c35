from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from promptsmith.config import Settings
from promptsmith.errors import ExecutionError
from promptsmith.models import CompletionRequest, CompletionResponse, ModelPricing
from promptsmith.pricing import MODEL_PRICING, calculate_cost
from promptsmith.provider import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, Provider, ProviderRegistry

logger = logging.getLogger(__name__)

OPENAI_BASE = "https://api.openai.com/v1"
ANTHROPIC_BASE = "https://api.anthropic.com/v1"
OPENROUTER_BASE = "https://openrouter.ai/api/v1"

ANTHROPIC_VERSION = "2023-06-01"


@dataclass
class HttpProvider(Provider):
    """Provider backed by an ``httpx.AsyncClient``; use it with ``async with``.

    Failed calls are not retried: every transport error, error status or
    vendor error payload surfaces as an ExecutionError for that one call.
    """

    api_key: str
    timeout: float = 60.0
    base_url: str | None = None
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, repr=False)

    default_base_url: ClassVar[str] = ""

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def __aenter__(self) -> HttpProvider:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url or self.default_base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json", **self._auth_headers()},
                transport=self.transport,
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json_body: dict[str, Any] | None) -> dict[str, Any]:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} is not initialized. Use 'async with'.")

        try:
            response = await self._client.request(method, path, json=json_body)
        except httpx.HTTPError as exc:
            raise ExecutionError(f"request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            if response.is_error:
                raise ExecutionError(f"HTTP {response.status_code} from {self.name}") from exc
            raise ExecutionError(f"failed to parse response: {exc}") from exc

        if not isinstance(data, dict):
            raise ExecutionError("failed to parse response: expected a JSON object")
        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ExecutionError(f"API error: {message}")
        if response.is_error:
            raise ExecutionError(f"HTTP {response.status_code} from {self.name}")
        return data


def _sampling(request: CompletionRequest) -> tuple[int, float]:
    max_tokens = request.max_tokens or DEFAULT_MAX_TOKENS
    temperature = DEFAULT_TEMPERATURE if request.temperature is None else request.temperature
    return max_tokens, temperature


@dataclass
class OpenAIProvider(HttpProvider):
    name = "openai"
    default_base_url: ClassVar[str] = OPENAI_BASE

    def models(self) -> list[str]:
        return [
            "gpt-4o",
            "gpt-4o-mini",
            "gpt-4-turbo",
            "gpt-4",
            "gpt-3.5-turbo",
            "o1",
            "o1-mini",
            "o1-preview",
        ]

    def _cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        return calculate_cost(model, input_tokens, output_tokens)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        max_tokens, temperature = _sampling(request)
        start = time.perf_counter()
        payload = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        data = await self._request("POST", "/chat/completions", payload)
        latency_ms = (time.perf_counter() - start) * 1000.0

        choices = data.get("choices") or []
        if not choices:
            raise ExecutionError("no choices in response")
        content = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}
        input_tokens = int(usage.get("prompt_tokens") or 0)
        output_tokens = int(usage.get("completion_tokens") or 0)
        total_tokens = int(usage.get("total_tokens") or input_tokens + output_tokens)
        return CompletionResponse(
            content=content,
            model=data.get("model") or request.model,
            prompt_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            latency_ms=latency_ms,
            cost=self._cost(request.model, input_tokens, output_tokens),
        )


@dataclass
class OpenRouterProvider(OpenAIProvider):
    """OpenAI-compatible gateway serving ``vendor/model`` ids.

    ``fetch_models`` loads the live catalogue and its per-model prices; until
    then any ``vendor/model`` id is accepted and priced from the static table.
    """

    name = "openrouter"
    default_base_url: ClassVar[str] = OPENROUTER_BASE
    pricing: dict[str, ModelPricing] = field(default_factory=dict)

    def models(self) -> list[str]:
        return sorted(self.pricing)

    def supports(self, model: str) -> bool:
        if self.pricing:
            return model in self.pricing
        return "/" in model

    def _cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        return calculate_cost(model, input_tokens, output_tokens, self.pricing or MODEL_PRICING)

    async def fetch_models(self) -> dict[str, ModelPricing]:
        """Replace ``pricing`` with the live catalogue; unpriced entries are skipped."""
        data = await self._request("GET", "/models", None)
        self.pricing = {}
        for item in data.get("data", []):
            price = _catalogue_price(item.get("pricing"))
            if item.get("id") and price is not None:
                self.pricing[item["id"]] = price
        logger.debug("Loaded %d OpenRouter models", len(self.pricing))
        return self.pricing


def _catalogue_price(entry: Any) -> ModelPricing | None:
    # The catalogue quotes USD per token as strings; the table is per 1M tokens.
    if not isinstance(entry, dict):
        return None
    try:
        return ModelPricing(
            input=float(entry["prompt"]) * 1_000_000,
            output=float(entry["completion"]) * 1_000_000,
        )
    except (KeyError, TypeError, ValueError):
        return None


# Shorthand names accepted in suites, mapped to the dated model ids.
ANTHROPIC_ALIASES = {
    "claude-sonnet": "claude-sonnet-4-20250514",
    "claude-haiku": "claude-3-5-haiku-20241022",
    "claude-opus": "claude-3-opus-20240229",
}


@dataclass
class AnthropicProvider(HttpProvider):
    name = "anthropic"
    default_base_url: ClassVar[str] = ANTHROPIC_BASE

    def _auth_headers(self) -> dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}

    def models(self) -> list[str]:
        return [
            "claude-sonnet-4-20250514",
            "claude-3-5-sonnet-20241022",
            "claude-3-5-haiku-20241022",
            "claude-3-opus-20240229",
            "claude-3-sonnet-20240229",
            "claude-3-haiku-20240307",
            *ANTHROPIC_ALIASES,
        ]

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        max_tokens, temperature = _sampling(request)
        start = time.perf_counter()
        payload = {
            "model": ANTHROPIC_ALIASES.get(request.model, request.model),
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": temperature,
        }
        data = await self._request("POST", "/messages", payload)
        latency_ms = (time.perf_counter() - start) * 1000.0

        blocks = [b for b in data.get("content") or [] if b.get("type", "text") == "text"]
        if not blocks:
            raise ExecutionError("no content in response")
        content = "".join(b.get("text") or "" for b in blocks)
        usage = data.get("usage") or {}
        input_tokens = int(usage.get("input_tokens") or 0)
        output_tokens = int(usage.get("output_tokens") or 0)
        return CompletionResponse(
            content=content,
            model=data.get("model") or request.model,
            prompt_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            latency_ms=latency_ms,
            cost=calculate_cost(request.model, input_tokens, output_tokens),
        )


def build_registry(settings: Settings) -> ProviderRegistry:
    """Register an adapter for every vendor with a configured API key."""
    registry = ProviderRegistry()
    if settings.openai_api_key:
        registry.register(OpenAIProvider(api_key=settings.openai_api_key, timeout=settings.timeout_seconds))
    if settings.anthropic_api_key:
        registry.register(AnthropicProvider(api_key=settings.anthropic_api_key, timeout=settings.timeout_seconds))
    if settings.openrouter_api_key:
        registry.register(
            OpenRouterProvider(api_key=settings.openrouter_api_key, timeout=settings.timeout_seconds)
        )
    logger.debug("Registered providers: %s", ", ".join(registry.names()) or "none")
    return registry
