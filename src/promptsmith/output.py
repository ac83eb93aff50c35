from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from promptsmith.models import BenchmarkResult, ModelPricing, ModelResult, SuiteResult

CSV_FIELDS = [
    "suite",
    "model",
    "runs",
    "latency_p50_ms",
    "latency_p99_ms",
    "latency_avg_ms",
    "prompt_tokens",
    "total_tokens_avg",
    "output_tokens_avg",
    "cost_per_request",
    "total_cost",
    "errors",
    "error_rate",
]


def render_suite_results(results: list[SuiteResult], output_format: str, console: Console) -> None:
    if output_format.lower() == "json":
        console.out(to_json(results), highlight=False)
        return
    for result in results:
        _render_suite(result, console)


def _render_suite(result: SuiteResult, console: Console) -> None:
    header = Text(f"\n{result.suite_name}", style="bold")
    header.append(f" ({result.prompt_name}@{result.version})", style="dim")
    console.print(header)
    for r in result.results:
        if r.skipped:
            console.print(f"  [yellow]○[/yellow] {escape(r.test_name)} [dim](skipped)[/dim]")
        elif r.passed:
            console.print(f"  [green]✓[/green] {escape(r.test_name)} [dim]({r.duration_ms:.0f}ms)[/dim]")
        else:
            console.print(f"  [red]✗[/red] {escape(r.test_name)}")
            if r.error:
                console.print(Text(f"      {r.error}", style="red"))
            for failure in r.failures:
                console.print(Text(f"      {failure.type}: {failure.message}", style="red"))
                if failure.expected:
                    console.print(Text(f"        expected: {failure.expected}", style="dim"))
                if failure.actual:
                    console.print(Text(f"        actual:   {failure.actual}", style="dim"))

    summary = Text(f"  {result.passed} passed, {result.failed} failed, {result.skipped} skipped")
    summary.append(f" ({result.duration_ms:.0f}ms)", style="dim")
    console.print(summary)


def render_benchmark_results(results: list[BenchmarkResult], output_format: str, console: Console) -> None:
    output_format = output_format.lower()
    if output_format == "json":
        console.out(to_json(results), highlight=False)
    elif output_format == "csv":
        console.out(to_csv(results), highlight=False, end="")
    else:
        for result in results:
            _render_table(result, console)


def _render_table(result: BenchmarkResult, console: Console) -> None:
    table = Table(title=f"{result.suite_name} ({result.prompt_name}@{result.version})")
    table.add_column("Model")
    table.add_column("Latency (p50)", justify="right")
    table.add_column("Latency (p99)", justify="right")
    table.add_column("Tokens (avg)", justify="right")
    table.add_column("Cost/req", justify="right")
    table.add_column("Errors", justify="right")

    for m in result.models:
        table.add_row(
            m.model,
            _format_ms(m.latency_p50_ms),
            _format_ms(m.latency_p99_ms),
            "n/a" if m.total_tokens_avg is None else f"{m.total_tokens_avg:.0f}",
            _format_cost(m.cost_per_request),
            _format_errors(m),
        )
    console.print(table)

    recommendation = recommend(result.models)
    if recommendation:
        console.print(recommendation)


def recommend(models: Iterable[ModelResult]) -> str | None:
    """Name the fastest and the cheapest model among those with at least one success."""
    usable = [m for m in models if m.error_rate < 1 and m.latency_p50_ms is not None]
    if len(usable) < 2:
        return None
    fastest = min(usable, key=lambda m: m.latency_p50_ms)
    cheapest = min(usable, key=lambda m: m.cost_per_request or 0.0)
    if fastest.model == cheapest.model:
        return f"Recommendation: {fastest.model} is both the fastest and the cheapest."
    return (
        f"Recommendation: {fastest.model} for latency ({fastest.latency_p50_ms:.0f}ms p50), "
        f"{cheapest.model} for cost ({_format_cost(cheapest.cost_per_request)}/req)."
    )


def to_json(results: Iterable[SuiteResult | BenchmarkResult]) -> str:
    payload = [r.model_dump(mode="json") for r in results]
    return json.dumps(payload, indent=2)


def to_csv(results: Iterable[BenchmarkResult]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()
    for result in results:
        for m in result.models:
            writer.writerow({"suite": result.suite_name, **m.model_dump()})
    return buffer.getvalue()


def render_models(entries: list[tuple[str, str, ModelPricing | None]], console: Console) -> None:
    table = Table(title="Configured Models (Pricing)")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Input $/1M", justify="right")
    table.add_column("Output $/1M", justify="right")

    for provider, model_id, pricing in entries:
        if pricing is None:
            table.add_row(provider, model_id, "n/a", "n/a")
        else:
            table.add_row(provider, model_id, f"{pricing.input:.2f}", f"{pricing.output:.2f}")
    console.print(table)


def _format_ms(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.0f}ms"


def _format_cost(cost: float | None) -> str:
    if cost is None:
        return "n/a"
    return f"${cost:.6f}"


def _format_errors(result: ModelResult) -> Text:
    if not result.errors:
        return Text("0")
    style = "red" if result.error_rate >= 1 else "yellow"
    return Text(f"{result.errors} ({result.error_rate:.0%})", style=style)
