from __future__ import annotations

import math
from typing import Any, Union

from promptsmith.errors import AssertionConfigError

# Variable bindings and assertion values arrive from YAML/JSON as one of these.
Value = Union[str, bool, int, float, None]

NO_VALUE = "<no value>"


def format_value(value: Any) -> str:
    """Canonical string form of a bound value.

    Whole-number floats print without a decimal point (``10.0`` -> ``"10"``),
    booleans print lower-case and ``None`` prints as an empty string, so that
    rendered prompts and assertion comparisons do not depend on how a number
    happened to be written in the suite file.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def coerce_int(value: Value) -> int:
    if isinstance(value, bool) or value is None:
        raise AssertionConfigError(f"expected an integer value, got {format_value(value)!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise AssertionConfigError(f"expected an integer value, got {value!r}")
        return int(value)
    try:
        return int(value.strip())
    except ValueError:
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            raise AssertionConfigError(f"expected an integer value, got {value!r}") from None
