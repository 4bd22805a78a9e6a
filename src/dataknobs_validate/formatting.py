"""Message interpolation, humanization and result formatters.

Messages are templates with ``%{name}`` placeholders::

    >>> format("is too short (minimum is %{count} characters)", {"count": 3})
    'is too short (minimum is 3 characters)'

``%%{name}`` escapes a placeholder. Placeholders with no matching value
are left in place so a later stage (for instance ``%{value}``
interpolation) can still fill them.

Formatters turn the list of ``ErrorDetail`` records produced by one
validation call into the structure handed back to the caller.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Callable

from dataknobs_validate.result import ErrorDetail
from dataknobs_validate.utils import is_array, is_number, unique

_PLACEHOLDER = re.compile(r"(%?)%\{([^}]+)\}")
_DOTTED = re.compile(r"([^\s])\.([^\s])")
_CAMEL = re.compile(r"([a-z])([A-Z])")


def format(template: Any, values: Mapping[str, Any]) -> Any:
    """Substitute ``%{name}`` placeholders in template.

    Non-string templates (e.g. message callables) are returned unchanged.
    """
    if not isinstance(template, str):
        return template

    def substitute(match: re.Match) -> str:
        escaped, key = match.group(1), match.group(2)
        if escaped == "%":
            return "%{" + key + "}"
        if key not in values:
            return match.group(0)
        return str(values[key])

    return _PLACEHOLDER.sub(substitute, template)


def _prettify_number(value: Any) -> str:
    if not math.isfinite(value):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if (value * 100) % 1 == 0:
        return str(value)
    return f"{round(value * 100) / 100:.2f}"


def prettify(value: Any) -> str:
    """Humanize an identifier or value for use in a message.

    ``"firstName"`` -> ``"first name"``, ``"address.zip_code"`` ->
    ``"address zip code"``; numbers are rounded to two decimals, sequences
    are joined with commas, dates are rendered in ISO format.
    """
    if is_number(value):
        return _prettify_number(value)
    if is_array(value):
        return ", ".join(prettify(item) for item in value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()

    text = str(value)
    text = _DOTTED.sub(r"\1 \2", text)
    text = re.sub(r"\\+", "", text)
    text = re.sub(r"[_-]", " ", text)
    text = _CAMEL.sub(lambda m: f"{m.group(1)} {m.group(2).lower()}", text)
    return text.lower()


def stringify_value(value: Any, prettifier: Callable[[Any], str] | None = None) -> str:
    """Render an attribute value for ``%{value}`` interpolation."""
    return (prettifier or prettify)(value)


def flatten_errors_to_array(errors: list[ErrorDetail]) -> list[Any]:
    """Messages of errors in order, without duplicates."""
    return unique(error.error for error in errors)


def group_errors_by_attribute(errors: list[ErrorDetail]) -> dict[str, list[ErrorDetail]]:
    """Bucket errors by attribute keeping first-seen attribute order."""
    grouped: dict[str, list[ErrorDetail]] = {}
    for error in errors:
        grouped.setdefault(error.attribute, []).append(error)
    return grouped


def format_grouped(errors: list[ErrorDetail]) -> dict[str, list[Any]]:
    """``{"attribute": ["message", ...]}`` (the default)."""
    return {
        attribute: flatten_errors_to_array(group)
        for attribute, group in group_errors_by_attribute(errors).items()
    }


def format_flat(errors: list[ErrorDetail]) -> list[Any]:
    """``["message", ...]`` across all attributes."""
    return flatten_errors_to_array(errors)


def format_detailed(errors: list[ErrorDetail]) -> list[ErrorDetail]:
    """The error records themselves."""
    return list(errors)


def format_constraint(errors: list[ErrorDetail]) -> dict[str, list[str]]:
    """``{"attribute": ["presence", "length"]}``: names of violated constraints."""
    return {
        attribute: unique(error.validator for error in group)
        for attribute, group in group_errors_by_attribute(errors).items()
    }


def builtin_formatters() -> dict[str, Callable[[list[ErrorDetail]], Any]]:
    """Fresh mapping of the built-in formatters by name."""
    return {
        "grouped": format_grouped,
        "flat": format_flat,
        "detailed": format_detailed,
        "constraint": format_constraint,
    }


__all__ = [
    "builtin_formatters",
    "flatten_errors_to_array",
    "format",
    "format_constraint",
    "format_detailed",
    "format_flat",
    "format_grouped",
    "group_errors_by_attribute",
    "prettify",
    "stringify_value",
]
