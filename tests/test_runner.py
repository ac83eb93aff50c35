import asyncio
from datetime import timedelta

import pytest

from promptsmith.errors import NotFoundError, RenderError
from promptsmith.models import BenchmarkSuite, CompletionResponse
from promptsmith.provider import MockProvider, ProviderRegistry
from promptsmith.runner import BenchmarkRunner, aggregate_model, average, percentile


def test_percentile_nearest_rank():
    values = [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
    assert percentile([], 50) == 0
    assert percentile([100], 50) == 100
    assert percentile(values, 50) == 60
    assert percentile(values, 99) == 100
    assert percentile(values, 0) == 10
    assert percentile([10, 20, 30, 40, 50], 100) == 50


def test_average():
    assert average([]) == 0
    assert average([100]) == 100
    assert average([10, 20, 30]) == 20


def _response(latency, cost, prompt_tokens=10, output_tokens=5):
    return CompletionResponse(
        content="ok",
        model="gpt-4o",
        prompt_tokens=prompt_tokens,
        output_tokens=output_tokens,
        total_tokens=prompt_tokens + output_tokens,
        latency_ms=latency,
        cost=cost,
    )


def test_aggregate_model_costs():
    responses = [_response(300, 0.01), _response(100, 0.02), _response(200, 0.03, prompt_tokens=12)]

    result = aggregate_model("gpt-4o", 3, responses)

    assert result.total_cost == pytest.approx(0.06)
    assert result.cost_per_request == pytest.approx(0.02)
    assert result.latency_p50_ms == 200
    assert result.latency_p99_ms == 300
    assert result.latency_avg_ms == pytest.approx(200)
    assert result.prompt_tokens == 12
    assert result.total_tokens_avg == pytest.approx(15.666, abs=1e-3)
    assert (result.errors, result.error_rate) == (0, 0.0)


def test_aggregate_model_without_successes():
    result = aggregate_model("gpt-4o", 2, [])
    assert result.errors == 2
    assert result.error_rate == 1.0
    assert result.latency_p50_ms is None
    assert result.total_cost is None


def bench(models, runs=3, **fields):
    return BenchmarkSuite(name="greeting-bench", prompt="greeting", models=models, runs_per_model=runs, **fields)


@pytest.mark.asyncio
async def test_benchmark_aggregates_per_model(resolver):
    openai = MockProvider(name="openai", reply="Hi", latencies=[120.0, 80.0, 100.0], costs=[0.01, 0.02, 0.03])
    runner = BenchmarkRunner(resolver, ProviderRegistry([openai]))

    result = await runner.run(bench(["gpt-4o"], variables={"name": "Ana"}))

    (model,) = result.models
    assert model.model == "gpt-4o"
    assert model.runs == 3
    assert model.latency_p50_ms == 100.0
    assert model.latency_p99_ms == 120.0
    assert model.total_cost == pytest.approx(0.06)
    assert model.cost_per_request == pytest.approx(0.02)
    assert model.error_rate == 0.0
    assert [r.iteration for r in result.runs] == [0, 1, 2]
    assert all(call.prompt == "Hello, Ana!" for call in openai.calls)
    assert openai.calls[0].max_tokens == 1024
    assert openai.calls[0].temperature == 0.7
    assert result.version == "1.0.0"
    assert result.started_at.utcoffset() == timedelta(0)
    assert result.started_at <= result.completed_at


@pytest.mark.asyncio
async def test_model_without_provider_is_recorded(resolver):
    runner = BenchmarkRunner(resolver, ProviderRegistry())

    result = await runner.run(bench(["claude-haiku"]))

    (model,) = result.models
    assert model.errors == 3
    assert model.error_rate == 1.0
    assert model.latency_p50_ms is None
    assert model.total_cost is None
    assert len(result.runs) == 3
    assert all(r.latency_ms is None and r.cost is None for r in result.runs)
    assert all(
        r.error == "no provider registered for model claude-haiku (provider: anthropic)" for r in result.runs
    )


@pytest.mark.asyncio
async def test_partial_failures_are_counted(resolver):
    openai = MockProvider(name="openai", latencies=[50.0, 60.0, 70.0, 80.0], costs=[0.01], fail_on={1})
    runner = BenchmarkRunner(resolver, ProviderRegistry([openai]))

    result = await runner.run(bench(["gpt-4o"], runs=4))

    (model,) = result.models
    assert model.errors == 1
    assert model.error_rate == 0.25
    assert model.total_cost == pytest.approx(0.03)
    assert model.cost_per_request == pytest.approx(0.01)
    failed = result.runs[1]
    assert failed.error == "mock completion failed"
    assert failed.latency_ms is None and failed.cost is None and failed.output is None


@pytest.mark.asyncio
async def test_models_run_in_suite_order(resolver):
    registry = ProviderRegistry([MockProvider(name="openai"), MockProvider(name="anthropic")])

    result = await BenchmarkRunner(resolver, registry).run(bench(["claude-sonnet", "gpt-4o"], runs=2))

    assert [m.model for m in result.models] == ["claude-sonnet", "gpt-4o"]
    assert [(r.model, r.iteration) for r in result.runs] == [
        ("claude-sonnet", 0),
        ("claude-sonnet", 1),
        ("gpt-4o", 0),
        ("gpt-4o", 1),
    ]


@pytest.mark.asyncio
async def test_render_failure_aborts_run(resolver):
    resolver.add("broken", "1", "{{ oops")
    suite = BenchmarkSuite(name="b", prompt="broken", models=["gpt-4o"], variables={"x": 1})

    with pytest.raises(RenderError):
        await BenchmarkRunner(resolver).run(suite)


@pytest.mark.asyncio
async def test_missing_prompt_raises(resolver):
    suite = BenchmarkSuite(name="b", prompt="unknown", models=["gpt-4o"])

    with pytest.raises(NotFoundError):
        await BenchmarkRunner(resolver).run(suite)


@pytest.mark.asyncio
async def test_timeout_becomes_iteration_error(resolver):
    class SlowProvider(MockProvider):
        async def complete(self, request):
            await asyncio.sleep(1)
            return await super().complete(request)

    runner = BenchmarkRunner(resolver, ProviderRegistry([SlowProvider(name="openai")]), request_timeout=0.01)

    result = await runner.run(bench(["gpt-4o"], runs=1))

    assert result.models[0].errors == 1
    assert "timed out" in result.runs[0].error


@pytest.mark.asyncio
async def test_cancellation_propagates(resolver):
    class CancelledProvider(MockProvider):
        async def complete(self, request):
            raise asyncio.CancelledError

    runner = BenchmarkRunner(resolver, ProviderRegistry([CancelledProvider(name="openai")]))

    with pytest.raises(asyncio.CancelledError):
        await runner.run(bench(["gpt-4o"], runs=1))
