from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from promptsmith.errors import ProviderLookupError
from promptsmith.models import (
    BenchmarkResult,
    BenchmarkSuite,
    CompletionRequest,
    CompletionResponse,
    ModelResult,
    RunResult,
)
from promptsmith.provider import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, Provider, ProviderRegistry
from promptsmith.store import ContentResolver
from promptsmith.template import render_template

logger = logging.getLogger(__name__)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an ascending sequence, without interpolation.

    The index is ``floor(p * n / 100)`` clipped to the last element, so p100
    returns the maximum. An empty sequence yields 0.
    """
    if not sorted_values:
        return 0.0
    idx = math.floor(p * len(sorted_values) / 100)
    idx = min(max(idx, 0), len(sorted_values) - 1)
    return sorted_values[idx]


def average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def aggregate_model(model: str, runs: int, responses: Sequence[CompletionResponse]) -> ModelResult:
    """Summarise one model's iterations; ``responses`` holds the successful ones."""
    errors = runs - len(responses)
    error_rate = errors / runs if runs else 0.0
    if not responses:
        return ModelResult(model=model, runs=runs, errors=errors, error_rate=error_rate)

    latencies = sorted(r.latency_ms for r in responses)
    total_cost = sum(r.cost for r in responses)
    return ModelResult(
        model=model,
        runs=runs,
        latency_p50_ms=percentile(latencies, 50),
        latency_p99_ms=percentile(latencies, 99),
        latency_avg_ms=average(latencies),
        prompt_tokens=responses[-1].prompt_tokens,
        total_tokens_avg=average([r.total_tokens for r in responses]),
        output_tokens_avg=average([r.output_tokens for r in responses]),
        cost_per_request=total_cost / len(responses),
        total_cost=total_cost,
        errors=errors,
        error_rate=error_rate,
    )


class BenchmarkRunner:
    """Runs a benchmark suite: one render, then N sequential completions per model.

    A model without a registered provider, or an iteration that fails, is
    recorded in the result and never stops the remaining work.
    """

    def __init__(
        self,
        resolver: ContentResolver,
        registry: ProviderRegistry | None = None,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        request_timeout: float | None = None,
    ) -> None:
        self.resolver = resolver
        self.registry = registry if registry is not None else ProviderRegistry()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.request_timeout = request_timeout

    async def run(self, suite: BenchmarkSuite) -> BenchmarkResult:
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()

        resolved = self.resolver.resolve(suite.prompt, suite.version)
        rendered = render_template(resolved.content, suite.variables)
        logger.info(
            "Benchmarking %s@%s on %d model(s) x %d run(s)",
            resolved.name,
            resolved.version,
            len(suite.models),
            suite.runs_per_model,
        )

        models: list[ModelResult] = []
        runs: list[RunResult] = []
        for model in suite.models:
            model_result, model_runs = await self.benchmark_model(model, rendered, suite.runs_per_model)
            models.append(model_result)
            runs.extend(model_runs)

        return BenchmarkResult(
            suite_name=suite.name,
            prompt_name=suite.prompt,
            version=resolved.version,
            models=models,
            runs=runs,
            duration_ms=(time.perf_counter() - start) * 1000.0,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )

    async def benchmark_model(self, model: str, prompt: str, runs: int) -> tuple[ModelResult, list[RunResult]]:
        try:
            provider = self.registry.get_for_model(model)
        except ProviderLookupError as exc:
            logger.warning("Skipping %s: %s", model, exc)
            errored = [RunResult(model=model, iteration=i, error=str(exc)) for i in range(runs)]
            return ModelResult(model=model, runs=runs, errors=runs, error_rate=1.0), errored

        run_results: list[RunResult] = []
        responses: list[CompletionResponse] = []
        for iteration in range(runs):
            request = CompletionRequest(
                model=model,
                prompt=prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            try:
                response = await self._complete(provider, request)
            except asyncio.TimeoutError:
                error = f"request timed out after {self.request_timeout}s"
            except Exception as exc:  # noqa: BLE001
                error = str(exc) or type(exc).__name__
            else:
                responses.append(response)
                run_results.append(
                    RunResult(
                        model=model,
                        iteration=iteration,
                        latency_ms=response.latency_ms,
                        prompt_tokens=response.prompt_tokens,
                        output_tokens=response.output_tokens,
                        total_tokens=response.total_tokens,
                        cost=response.cost,
                        output=response.content,
                    )
                )
                continue

            logger.warning("%s run %d/%d failed: %s", model, iteration + 1, runs, error)
            run_results.append(RunResult(model=model, iteration=iteration, error=error))

        return aggregate_model(model, runs, responses), run_results

    async def _complete(self, provider: Provider, request: CompletionRequest) -> CompletionResponse:
        if self.request_timeout is None:
            return await provider.complete(request)
        return await asyncio.wait_for(provider.complete(request), self.request_timeout)
