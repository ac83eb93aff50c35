from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from promptsmith.client import OpenRouterProvider, build_registry
from promptsmith.config import Settings
from promptsmith.errors import ExecutionError, PromptsmithError
from promptsmith.evaluation import TestRunner
from promptsmith.executor import ProviderExecutor
from promptsmith.models import BenchmarkResult, ModelPricing, SuiteResult
from promptsmith.output import render_benchmark_results, render_models, render_suite_results
from promptsmith.pricing import lookup_pricing
from promptsmith.provider import ProviderRegistry
from promptsmith.runner import BenchmarkRunner
from promptsmith.store import DirectoryContentResolver
from promptsmith.suite import YamlSnapshotWriter, load_benchmark_suite, load_test_suite

app = typer.Typer(no_args_is_help=True, help="Test and benchmark prompt templates across LLM providers.")

err_console = Console(stderr=True, soft_wrap=True)


def _configure_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _suite_paths(paths: list[Path] | None, directory: str, pattern: str) -> list[Path]:
    if paths:
        return paths
    found = sorted(Path(directory).glob(pattern))
    if not found:
        raise typer.BadParameter(f"No suites given and none found matching {directory}/{pattern}.")
    return found


def _emit(render: Callable[[Console], None], out_file: Path | None) -> None:
    if out_file is None:
        render(Console(soft_wrap=True))
        return
    with out_file.open("w") as fh:
        render(Console(file=fh, width=120))
    err_console.print(f"[dim]Results written to {out_file}[/dim]")


@app.command()
def test(
    suites: list[Path] | None = typer.Argument(None, help="Test suite files (default: tests/*.test.yaml)"),
    prompts_dir: Path = typer.Option(Path("prompts"), "--prompts-dir", "-p", help="Prompt store directory"),
    filter_: str | None = typer.Option(None, "--filter", "-f", help="Only run tests whose name contains this"),
    tags: list[str] | None = typer.Option(None, "--tag", help="Only run tests carrying one of these tags"),
    version: str | None = typer.Option(None, "--version", help="Prompt version or tag to test"),
    live: bool = typer.Option(False, "--live", help="Execute against a live model instead of echoing"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model for --live runs"),
    update_snapshots: bool = typer.Option(False, "--update-snapshots", "-u", help="Store outputs as new snapshots"),
    output_format: str = typer.Option("table", "--output", "-o", help="table|json"),
    out_file: Path | None = typer.Option(None, "--out-file", help="Write results to a file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run prompt test suites and report assertion failures."""
    settings = Settings()
    _configure_logging(settings.log_level, verbose)
    if output_format.lower() not in {"table", "json"}:
        raise typer.BadParameter("Output must be one of: table, json.")
    paths = _suite_paths(suites, "tests", "*.test.yaml")
    resolver = DirectoryContentResolver(prompts_dir)

    async def _run() -> tuple[list[SuiteResult], bool]:
        registry = build_registry(settings) if live else ProviderRegistry()
        executor = None
        if live:
            executor = ProviderExecutor(
                registry,
                model=model or settings.live_model,
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
            )
        results: list[SuiteResult] = []
        ok = True
        async with registry:
            for path in paths:
                try:
                    suite = load_test_suite(path)
                except (PromptsmithError, OSError) as exc:
                    err_console.print(f"[red]Error:[/red] {escape(str(exc))}", highlight=False)
                    ok = False
                    continue
                suite = suite.filtered(filter_, tags)
                if version:
                    suite = suite.model_copy(update={"version": version})
                runner = TestRunner(
                    resolver,
                    executor,
                    update_snapshots=update_snapshots,
                    snapshot_writer=YamlSnapshotWriter(path) if update_snapshots else None,
                    request_timeout=settings.timeout_seconds if live else None,
                )
                try:
                    result = await runner.run(suite)
                except PromptsmithError as exc:
                    err_console.print(f"[red]Error:[/red] {suite.name}: {escape(str(exc))}", highlight=False)
                    ok = False
                    continue
                results.append(result)
                ok = ok and result.failed == 0
        return results, ok

    results, ok = asyncio.run(_run())
    _emit(lambda console: render_suite_results(results, output_format, console), out_file)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def benchmark(
    suites: list[Path] | None = typer.Argument(None, help="Benchmark suite files (default: benchmarks/*.bench.yaml)"),
    prompts_dir: Path = typer.Option(Path("prompts"), "--prompts-dir", "-p", help="Prompt store directory"),
    models: str | None = typer.Option(None, "--models", help="Comma-separated model IDs overriding the suites'"),
    runs: int | None = typer.Option(None, "--runs", "-n", min=1, help="Runs per model"),
    version: str | None = typer.Option(None, "--version", help="Prompt version or tag to benchmark"),
    output_format: str = typer.Option("table", "--output", "-o", help="table|json|csv"),
    out_file: Path | None = typer.Option(None, "--out-file", help="Write results to a file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Compare latency, tokens and cost of a prompt across models."""
    settings = Settings()
    _configure_logging(settings.log_level, verbose)
    if output_format.lower() not in {"table", "json", "csv"}:
        raise typer.BadParameter("Output must be one of: table, json, csv.")

    update: dict[str, object] = {}
    if models is not None:
        model_ids = [m.strip() for m in models.split(",") if m.strip()]
        if not model_ids:
            raise typer.BadParameter("--models needs at least one model ID.")
        update["models"] = model_ids
    if runs is not None:
        update["runs_per_model"] = runs
    if version:
        update["version"] = version

    paths = _suite_paths(suites, "benchmarks", "*.bench.yaml")
    resolver = DirectoryContentResolver(prompts_dir)

    async def _run() -> tuple[list[BenchmarkResult], bool]:
        results: list[BenchmarkResult] = []
        ok = True
        async with build_registry(settings) as registry:
            runner = BenchmarkRunner(
                resolver,
                registry,
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
                request_timeout=settings.timeout_seconds,
            )
            for path in paths:
                try:
                    suite = load_benchmark_suite(path).model_copy(update=update)
                    err_console.print(
                        f"[dim]Running {suite.name} on {len(suite.models)} model(s) x {suite.runs_per_model} run(s)...[/dim]"
                    )
                    results.append(await runner.run(suite))
                except (PromptsmithError, OSError) as exc:
                    err_console.print(f"[red]Error:[/red] {escape(str(exc))}", highlight=False)
                    ok = False
        return results, ok

    results, ok = asyncio.run(_run())
    _emit(lambda console: render_benchmark_results(results, output_format, console), out_file)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def models() -> None:
    """List the models of every configured provider with their prices."""
    settings = Settings()
    _configure_logging(settings.log_level, False)

    async def _run() -> list[tuple[str, str, ModelPricing | None]]:
        entries: list[tuple[str, str, ModelPricing | None]] = []
        async with build_registry(settings) as registry:
            for provider in registry.providers():
                if isinstance(provider, OpenRouterProvider):
                    try:
                        await provider.fetch_models()
                    except ExecutionError as exc:
                        err_console.print(f"[yellow]Could not load OpenRouter models:[/yellow] {escape(str(exc))}")
                        continue
                    entries.extend((provider.name, m, provider.pricing[m]) for m in provider.models())
                else:
                    entries.extend((provider.name, m, lookup_pricing(m)) for m in provider.models())
        return entries

    entries = asyncio.run(_run())
    if not entries:
        err_console.print("No providers configured. Set OPENAI_API_KEY, ANTHROPIC_API_KEY or OPENROUTER_API_KEY.")
        raise typer.Exit(code=1)
    render_models(entries, Console())
