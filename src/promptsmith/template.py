from __future__ import annotations

from collections.abc import Mapping

from jinja2 import ChainableUndefined, Environment, TemplateError

from promptsmith.errors import RenderError
from promptsmith.values import NO_VALUE, Value, format_value


class _NoValue(ChainableUndefined):
    """Unbound variables render as a visible marker instead of failing."""

    __slots__ = ()

    def __str__(self) -> str:
        return NO_VALUE


def _finalize(value: object) -> object:
    if isinstance(value, _NoValue):
        return NO_VALUE
    return format_value(value)


_env = Environment(
    autoescape=False,
    keep_trailing_newline=True,
    undefined=_NoValue,
    finalize=_finalize,
)


def render_template(text: str, variables: Mapping[str, Value] | None = None) -> str:
    if not variables:
        return text
    try:
        template = _env.from_string(text)
        return template.render(dict(variables))
    except (TemplateError, TypeError, ValueError, ArithmeticError) as exc:
        raise RenderError(str(exc)) from exc
