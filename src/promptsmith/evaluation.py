from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol

from promptsmith.assertions import evaluate
from promptsmith.errors import PromptsmithError, RenderError
from promptsmith.executor import EchoExecutor, OutputExecutor
from promptsmith.models import (
    Assertion,
    AssertionResult,
    AssertionType,
    SuiteResult,
    TestCase,
    TestResult,
    TestSuite,
)
from promptsmith.store import ContentResolver
from promptsmith.template import render_template

logger = logging.getLogger(__name__)


class SnapshotWriter(Protocol):
    def write(self, suite_name: str, test_name: str, output: str) -> None:
        ...


class MemorySnapshotWriter:
    """Keeps written baselines in ``snapshots`` keyed by ``(suite, test)``."""

    def __init__(self) -> None:
        self.snapshots: dict[tuple[str, str], str] = {}

    def write(self, suite_name: str, test_name: str, output: str) -> None:
        self.snapshots[(suite_name, test_name)] = output


class TestRunner:
    """Runs every case of a test suite against one resolved prompt version.

    Cases run in suite order. A case that cannot be rendered or executed is
    recorded as failed with the error; it never stops the remaining cases.
    """

    __test__ = False

    def __init__(
        self,
        resolver: ContentResolver,
        executor: OutputExecutor | None = None,
        *,
        update_snapshots: bool = False,
        snapshot_writer: SnapshotWriter | None = None,
        request_timeout: float | None = None,
    ) -> None:
        if update_snapshots and snapshot_writer is None:
            raise ValueError("update_snapshots requires a snapshot_writer")
        self.resolver = resolver
        self.executor = executor if executor is not None else EchoExecutor()
        self.update_snapshots = update_snapshots
        self.snapshot_writer = snapshot_writer
        self.request_timeout = request_timeout

    async def run(self, suite: TestSuite) -> SuiteResult:
        start = time.perf_counter()
        resolved = self.resolver.resolve(suite.prompt, suite.version)
        logger.info("Running %s against %s@%s", suite.name, resolved.name, resolved.version)

        results: list[TestResult] = []
        passed = failed = skipped = 0
        for case in suite.tests:
            result = await self.run_case(suite.name, resolved.content, case)
            results.append(result)
            if result.skipped:
                skipped += 1
            elif result.passed:
                passed += 1
            else:
                failed += 1

        return SuiteResult(
            suite_name=suite.name,
            prompt_name=suite.prompt,
            version=resolved.version,
            passed=passed,
            failed=failed,
            skipped=skipped,
            total=len(results),
            results=results,
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )

    async def run_case(self, suite_name: str, content: str, case: TestCase) -> TestResult:
        if case.skip:
            logger.debug("Skipping %s", case.name)
            return TestResult(test_name=case.name, skipped=True)

        start = time.perf_counter()

        def finish(**fields) -> TestResult:
            return TestResult(
                test_name=case.name,
                duration_ms=(time.perf_counter() - start) * 1000.0,
                **fields,
            )

        try:
            rendered = render_template(content, case.inputs)
        except RenderError as exc:
            return finish(error=f"failed to render prompt: {exc}")

        try:
            output = await self._execute(rendered, case)
        except asyncio.TimeoutError:
            return finish(error=f"execution failed: timed out after {self.request_timeout}s")
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s: execution failed: %s", case.name, exc)
            return finish(error=f"execution failed: {exc}")

        failures: list[AssertionResult] = []
        for assertion in case.assertions:
            if assertion.type == AssertionType.SNAPSHOT.value:
                if self.update_snapshots:
                    try:
                        self.snapshot_writer.write(suite_name, case.name, output)
                    except (OSError, PromptsmithError) as exc:
                        return finish(output=output, error=f"failed to update snapshot: {exc}")
                    logger.info("Updated snapshot for %s", case.name)
                    continue
                assertion = _with_baseline(assertion, case.snapshot)

            result = evaluate(assertion, output)
            if not result.passed:
                failures.append(result)

        return finish(passed=not failures, output=output, failures=failures)

    async def _execute(self, rendered: str, case: TestCase) -> str:
        pending = self.executor.execute(rendered, case.inputs)
        if self.request_timeout is None:
            return await pending
        return await asyncio.wait_for(pending, self.request_timeout)


def _with_baseline(assertion: Assertion, baseline: str | None) -> Assertion:
    # The stored baseline always replaces the assertion value; none means no snapshot.
    return assertion.model_copy(update={"value": baseline})
