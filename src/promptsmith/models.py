from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from promptsmith.values import Value

DEFAULT_RUNS_PER_MODEL = 3


class AssertionType(str, Enum):
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"
    MATCHES = "matches"  # regex, searched not anchored
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    NOT_EMPTY = "not_empty"
    JSON_VALID = "json_valid"
    JSON_PATH = "json_path"
    LINE_COUNT = "line_count"
    MIN_LINES = "min_lines"
    MAX_LINES = "max_lines"
    WORD_COUNT = "word_count"
    SNAPSHOT = "snapshot"
    SENTIMENT = "sentiment"  # positive, negative, neutral
    LANGUAGE = "language"  # e.g. "en", "es"


KNOWN_ASSERTION_TYPES = frozenset(t.value for t in AssertionType)

_VALUE_REQUIRED = frozenset(
    {
        AssertionType.CONTAINS,
        AssertionType.NOT_CONTAINS,
        AssertionType.EQUALS,
        AssertionType.MATCHES,
        AssertionType.STARTS_WITH,
        AssertionType.ENDS_WITH,
        AssertionType.MIN_LENGTH,
        AssertionType.MAX_LENGTH,
        AssertionType.LINE_COUNT,
        AssertionType.MIN_LINES,
        AssertionType.MAX_LINES,
        AssertionType.WORD_COUNT,
    }
)


class ModelPricing(BaseModel):
    """Pricing per 1M tokens."""

    model_config = ConfigDict(frozen=True)

    input: float
    output: float


class CompletionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    prompt: str
    max_tokens: int | None = None
    temperature: float | None = None
    variables: dict[str, Value] = Field(default_factory=dict)


class CompletionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    prompt_tokens: int
    output_tokens: int
    total_tokens: int
    latency_ms: float
    cost: float


class Assertion(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Kept as a plain string so an unrecognised kind reaches the evaluator
    # and is reported there; suites reject unknown kinds when validated.
    type: str
    value: Value = None
    path: str | None = None
    message: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def kind_value(cls, value: object) -> object:
        if isinstance(value, AssertionType):
            return value.value
        return value


def assertion_problem(assertion: Assertion) -> str | None:
    """Return why an assertion is unusable in a suite, or None if it is fine."""
    if not assertion.type:
        return "assertion type is required"
    if assertion.type not in KNOWN_ASSERTION_TYPES:
        return f"unknown assertion type: {assertion.type}"
    kind = AssertionType(assertion.type)
    if kind in _VALUE_REQUIRED and assertion.value is None:
        return f"{kind.value} requires a value"
    if kind is AssertionType.JSON_PATH and not assertion.path:
        return "json_path requires a path"
    if kind is AssertionType.SENTIMENT and assertion.value is None:
        return "sentiment requires a value (positive, negative, neutral)"
    if kind is AssertionType.LANGUAGE and assertion.value is None:
        return "language requires a value (e.g., 'en', 'es')"
    return None


class AssertionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    passed: bool
    expected: str = ""
    actual: str = ""
    message: str = ""


class TestCase(BaseModel):
    __test__ = False
    model_config = ConfigDict(frozen=True)

    name: str = ""
    inputs: dict[str, Value] = Field(default_factory=dict)
    assertions: list[Assertion] = Field(default_factory=list)
    skip: bool = False
    tags: list[str] = Field(default_factory=list)
    snapshot: str | None = None  # stored baseline for snapshot assertions

    @model_validator(mode="after")
    def check_definition(self) -> TestCase:
        if self.skip:
            return self
        if not self.name:
            raise ValueError("test requires a name")
        if not self.assertions:
            raise ValueError(f"test '{self.name}' requires at least one assertion")
        for idx, assertion in enumerate(self.assertions, start=1):
            problem = assertion_problem(assertion)
            if problem is not None:
                raise ValueError(f"test '{self.name}' assertion {idx}: {problem}")
        return self


class TestSuite(BaseModel):
    __test__ = False
    model_config = ConfigDict(frozen=True)

    name: str
    prompt: str
    description: str | None = None
    version: str | None = None  # pin to a version label or tag; latest otherwise
    tests: list[TestCase]

    @field_validator("name", "prompt")
    @classmethod
    def not_blank(cls, value: str, info: ValidationInfo) -> str:
        if not value.strip():
            field = "a name" if info.field_name == "name" else "a prompt name"
            raise ValueError(f"test suite requires {field}")
        return value

    @field_validator("tests")
    @classmethod
    def has_tests(cls, value: list[TestCase]) -> list[TestCase]:
        if not value:
            raise ValueError("test suite requires at least one test")
        return value

    def filtered(self, pattern: str | None = None, tags: list[str] | None = None) -> TestSuite:
        """Copy of the suite keeping cases matching a name substring and any of the tags."""
        wanted = set(tags or [])
        tests = [
            tc
            for tc in self.tests
            if (not pattern or pattern in tc.name) and (not wanted or wanted & set(tc.tags))
        ]
        return self.model_copy(update={"tests": tests})


class TestResult(BaseModel):
    __test__ = False
    model_config = ConfigDict(frozen=True)

    test_name: str
    passed: bool = False
    skipped: bool = False
    output: str | None = None
    failures: list[AssertionResult] = Field(default_factory=list)
    error: str | None = None
    duration_ms: float = 0.0


class SuiteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    suite_name: str
    prompt_name: str
    version: str
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    results: list[TestResult] = Field(default_factory=list)
    duration_ms: float = 0.0

    @model_validator(mode="after")
    def check_counters(self) -> SuiteResult:
        if self.total != self.passed + self.failed + self.skipped:
            raise ValueError(
                f"total ({self.total}) must equal passed + failed + skipped "
                f"({self.passed} + {self.failed} + {self.skipped})"
            )
        return self


class BenchmarkSuite(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    prompt: str
    description: str | None = None
    version: str | None = None
    models: list[str]
    runs_per_model: int = Field(default=DEFAULT_RUNS_PER_MODEL, ge=1)
    variables: dict[str, Value] = Field(default_factory=dict)

    @field_validator("name", "prompt")
    @classmethod
    def not_blank(cls, value: str, info: ValidationInfo) -> str:
        if not value.strip():
            field = "a name" if info.field_name == "name" else "a prompt name"
            raise ValueError(f"benchmark suite requires {field}")
        return value

    @field_validator("models")
    @classmethod
    def check_models(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("benchmark suite requires at least one model")
        for idx, model in enumerate(value):
            if not model.strip():
                raise ValueError(f"model at index {idx} is empty")
        return value

    @field_validator("runs_per_model", mode="before")
    @classmethod
    def default_runs(cls, value: Value) -> Value:
        if value is None or value == 0:
            return DEFAULT_RUNS_PER_MODEL
        return value


class RunResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    iteration: int
    latency_ms: float | None = None
    prompt_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None
    output: str | None = None
    error: str | None = None


class ModelResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    runs: int
    # Latency, token and cost statistics cover successful runs only and stay
    # unset when every run errored.
    latency_p50_ms: float | None = None
    latency_p99_ms: float | None = None
    latency_avg_ms: float | None = None
    prompt_tokens: int | None = None
    total_tokens_avg: float | None = None
    output_tokens_avg: float | None = None
    cost_per_request: float | None = None
    total_cost: float | None = None
    errors: int = 0
    error_rate: float = 0.0


class BenchmarkResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    suite_name: str
    prompt_name: str
    version: str
    models: list[ModelResult] = Field(default_factory=list)
    runs: list[RunResult] = Field(default_factory=list)
    duration_ms: float = 0.0
    started_at: datetime
    completed_at: datetime
