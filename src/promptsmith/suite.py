from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from promptsmith.errors import SuiteValidationError
from promptsmith.models import BenchmarkSuite, TestSuite

logger = logging.getLogger(__name__)

SuiteT = TypeVar("SuiteT", bound=BaseModel)


def _describe(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        problems.append(f"{location}: {message}" if location else message)
    return "; ".join(problems)


def _load_yaml(text: str, source: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SuiteValidationError(f"{source}: invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise SuiteValidationError(f"{source}: expected a mapping at the top level")
    return data


def _parse(model: type[SuiteT], text: str, source: str) -> SuiteT:
    data = _load_yaml(text, source)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise SuiteValidationError(f"{source}: {_describe(exc)}") from exc


def parse_test_suite(text: str, source: str = "<string>") -> TestSuite:
    return _parse(TestSuite, text, source)


def load_test_suite(path: Path) -> TestSuite:
    path = Path(path)
    logger.debug("Loading test suite %s", path)
    return parse_test_suite(path.read_text(), str(path))


def parse_benchmark_suite(text: str, source: str = "<string>") -> BenchmarkSuite:
    return _parse(BenchmarkSuite, text, source)


def load_benchmark_suite(path: Path) -> BenchmarkSuite:
    path = Path(path)
    logger.debug("Loading benchmark suite %s", path)
    return parse_benchmark_suite(path.read_text(), str(path))


class YamlSnapshotWriter:
    """Stores snapshot baselines in the ``snapshot`` field of the suite file's cases."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def write(self, suite_name: str, test_name: str, output: str) -> None:
        data = _load_yaml(self.path.read_text(), str(self.path))
        for case in data.get("tests") or []:
            if isinstance(case, dict) and case.get("name") == test_name:
                case["snapshot"] = output
                break
        else:
            raise SuiteValidationError(f"{self.path}: test '{test_name}' not found in suite '{suite_name}'")
        self.path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True))
        logger.debug("Wrote snapshot for %s/%s to %s", suite_name, test_name, self.path)
