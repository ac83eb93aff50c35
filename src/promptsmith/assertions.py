"""Assertion evaluation.

``evaluate`` is a pure function of an assertion and a model output. It never
raises: malformed assertions (bad regex, non-numeric bounds) and unknown kinds
come back as failed results carrying a diagnostic message.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from promptsmith.errors import AssertionConfigError
from promptsmith.models import Assertion, AssertionResult, AssertionType
from promptsmith.values import coerce_int, format_value

MAX_ACTUAL_CHARS = 100

_MISSING = object()


def truncate(text: str, max_len: int = MAX_ACTUAL_CHARS) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def count_lines(text: str) -> int:
    if not text:
        return 0
    lines = text.split("\n")
    # A final newline does not start another line.
    if lines[-1] == "":
        return len(lines) - 1
    return len(lines)


def count_words(text: str) -> int:
    return len(text.split())


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def parse_json(text: str) -> Any:
    """Parse a strict JSON document; raises ValueError when invalid."""
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except RecursionError:
        raise ValueError("JSON nesting too deep") from None


def _split_path(path: str) -> list[str]:
    parts: list[str] = []
    buf: list[str] = []
    escaped = False
    for ch in path:
        if escaped:
            buf.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == ".":
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
    parts.append("".join(buf))
    return parts


def query_json(document: Any, path: str) -> Any:
    """Walk a dotted path such as ``data.items.0.id`` through parsed JSON.

    Numeric segments index arrays, ``#`` yields an array's length and ``\\.``
    escapes a literal dot in a key. Returns ``_MISSING`` when the path does
    not resolve.
    """
    node = document
    for key in _split_path(path):
        if isinstance(node, dict):
            if key not in node:
                return _MISSING
            node = node[key]
        elif isinstance(node, list):
            if key == "#":
                node = len(node)
            elif key.isdecimal() and int(key) < len(node):
                node = node[int(key)]
            else:
                return _MISSING
        else:
            return _MISSING
    return node


def json_text(value: Any) -> str:
    if value is _MISSING:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return format_value(value)


def _result(
    assertion: Assertion,
    passed: bool,
    actual: str,
    default_message: str,
    expected: str | None = None,
) -> AssertionResult:
    if expected is None:
        expected = format_value(assertion.value)
    message = assertion.message or ("" if passed else default_message)
    return AssertionResult(
        type=assertion.type,
        passed=passed,
        expected=expected,
        actual=actual,
        message=message,
    )


def _contains(assertion: Assertion, output: str) -> AssertionResult:
    needle = format_value(assertion.value)
    return _result(
        assertion,
        needle in output,
        truncate(output),
        f"expected output to contain '{needle}'",
    )


def _not_contains(assertion: Assertion, output: str) -> AssertionResult:
    needle = format_value(assertion.value)
    return _result(
        assertion,
        needle not in output,
        truncate(output),
        f"expected output not to contain '{needle}'",
    )


def _equals(assertion: Assertion, output: str) -> AssertionResult:
    expected = format_value(assertion.value)
    return _result(
        assertion,
        output.strip() == expected.strip(),
        truncate(output),
        "output does not match expected value",
    )


def _matches(assertion: Assertion, output: str) -> AssertionResult:
    pattern = format_value(assertion.value)
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        raise AssertionConfigError(f"invalid regex pattern: {exc}") from exc
    return _result(
        assertion,
        regex.search(output) is not None,
        truncate(output),
        f"output does not match pattern '{pattern}'",
    )


def _starts_with(assertion: Assertion, output: str) -> AssertionResult:
    prefix = format_value(assertion.value)
    return _result(
        assertion,
        output.strip().startswith(prefix),
        truncate(output),
        f"expected output to start with '{prefix}'",
    )


def _ends_with(assertion: Assertion, output: str) -> AssertionResult:
    suffix = format_value(assertion.value)
    return _result(
        assertion,
        output.strip().endswith(suffix),
        truncate(output),
        f"expected output to end with '{suffix}'",
    )


def _min_length(assertion: Assertion, output: str) -> AssertionResult:
    bound = coerce_int(assertion.value)
    return _result(
        assertion,
        len(output) >= bound,
        f"{len(output)} characters",
        f"expected at least {bound} characters, got {len(output)}",
    )


def _max_length(assertion: Assertion, output: str) -> AssertionResult:
    bound = coerce_int(assertion.value)
    return _result(
        assertion,
        len(output) <= bound,
        f"{len(output)} characters",
        f"expected at most {bound} characters, got {len(output)}",
    )


def _not_empty(assertion: Assertion, output: str) -> AssertionResult:
    return _result(
        assertion,
        output.strip() != "",
        f"{len(output)} characters",
        "expected non-empty output",
        expected="non-empty output",
    )


def _json_valid(assertion: Assertion, output: str) -> AssertionResult:
    try:
        parse_json(output)
        valid = True
    except ValueError:
        valid = False
    return _result(
        assertion,
        valid,
        truncate(output),
        "output is not valid JSON",
        expected="valid JSON",
    )


def _json_path(assertion: Assertion, output: str) -> AssertionResult:
    path = assertion.path or ""
    try:
        document = parse_json(output)
    except ValueError:
        return AssertionResult(
            type=assertion.type,
            passed=False,
            expected=format_value(assertion.value),
            actual=truncate(output),
            message="output is not valid JSON",
        )

    found = query_json(document, path)
    actual = json_text(found)
    if assertion.value is not None:
        expected = format_value(assertion.value)
        return _result(
            assertion,
            actual == expected,
            actual,
            f"JSONPath '{path}': expected '{expected}', got '{actual}'",
        )
    return _result(
        assertion,
        found is not _MISSING,
        actual,
        f"JSONPath '{path}' does not exist",
        expected=f"path '{path}' exists",
    )


def _line_count(assertion: Assertion, output: str) -> AssertionResult:
    expected = coerce_int(assertion.value)
    actual = count_lines(output)
    return _result(
        assertion,
        actual == expected,
        f"{actual} lines",
        f"expected {expected} lines, got {actual}",
    )


def _min_lines(assertion: Assertion, output: str) -> AssertionResult:
    bound = coerce_int(assertion.value)
    actual = count_lines(output)
    return _result(
        assertion,
        actual >= bound,
        f"{actual} lines",
        f"expected at least {bound} lines, got {actual}",
    )


def _max_lines(assertion: Assertion, output: str) -> AssertionResult:
    bound = coerce_int(assertion.value)
    actual = count_lines(output)
    return _result(
        assertion,
        actual <= bound,
        f"{actual} lines",
        f"expected at most {bound} lines, got {actual}",
    )


def _word_count(assertion: Assertion, output: str) -> AssertionResult:
    expected = coerce_int(assertion.value)
    actual = count_words(output)
    return _result(
        assertion,
        actual == expected,
        f"{actual} words",
        f"expected {expected} words, got {actual}",
    )


def _snapshot(assertion: Assertion, output: str) -> AssertionResult:
    # The runner substitutes the stored baseline as the assertion value.
    baseline = format_value(assertion.value)
    if baseline == "":
        return AssertionResult(
            type=assertion.type,
            passed=False,
            expected="(no snapshot stored)",
            actual=truncate(output),
            message="no snapshot stored; run with --update-snapshots to create one",
        )
    return _result(
        assertion,
        output.strip() == baseline.strip(),
        truncate(output),
        "output does not match snapshot; run with --update-snapshots to update",
        expected=truncate(baseline),
    )


def _not_implemented(assertion: Assertion, output: str) -> AssertionResult:
    # Needs a judging model; reported as passing until one exists.
    return AssertionResult(
        type=assertion.type,
        passed=True,
        expected=format_value(assertion.value),
        actual=truncate(output),
        message="LLM-based assertion (not yet implemented)",
    )


_CHECKS: dict[str, Callable[[Assertion, str], AssertionResult]] = {
    AssertionType.CONTAINS.value: _contains,
    AssertionType.NOT_CONTAINS.value: _not_contains,
    AssertionType.EQUALS.value: _equals,
    AssertionType.MATCHES.value: _matches,
    AssertionType.STARTS_WITH.value: _starts_with,
    AssertionType.ENDS_WITH.value: _ends_with,
    AssertionType.MIN_LENGTH.value: _min_length,
    AssertionType.MAX_LENGTH.value: _max_length,
    AssertionType.NOT_EMPTY.value: _not_empty,
    AssertionType.JSON_VALID.value: _json_valid,
    AssertionType.JSON_PATH.value: _json_path,
    AssertionType.LINE_COUNT.value: _line_count,
    AssertionType.MIN_LINES.value: _min_lines,
    AssertionType.MAX_LINES.value: _max_lines,
    AssertionType.WORD_COUNT.value: _word_count,
    AssertionType.SNAPSHOT.value: _snapshot,
    AssertionType.SENTIMENT.value: _not_implemented,
    AssertionType.LANGUAGE.value: _not_implemented,
}


def evaluate(assertion: Assertion, output: str) -> AssertionResult:
    check = _CHECKS.get(assertion.type)
    if check is None:
        return AssertionResult(
            type=assertion.type,
            passed=False,
            expected=format_value(assertion.value),
            actual=truncate(output),
            message=f"unknown assertion type: {assertion.type}",
        )
    try:
        return check(assertion, output)
    except AssertionConfigError as exc:
        return AssertionResult(
            type=assertion.type,
            passed=False,
            expected=format_value(assertion.value),
            actual=truncate(output),
            message=str(exc),
        )
