"""Supporting utilities: type predicates, key paths and attribute cleaning.

None of these carry validation policy; the validators and the engine
build on them.
"""

from __future__ import annotations

import inspect
import math
from collections.abc import Mapping, Sequence
from datetime import date
from numbers import Number
from typing import Any, Callable, Iterable, Iterator


def is_defined(value: Any) -> bool:
    """True unless value is None."""
    return value is not None


def is_number(value: Any) -> bool:
    """True for real numbers other than booleans and NaN."""
    if isinstance(value, bool) or not isinstance(value, Number):
        return False
    if isinstance(value, complex):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def is_integer(value: Any) -> bool:
    """True for numbers with no fractional part."""
    if not is_number(value):
        return False
    try:
        return value % 1 == 0
    except TypeError:
        return False


def is_boolean(value: Any) -> bool:
    return isinstance(value, bool)


def is_string(value: Any) -> bool:
    return isinstance(value, str)


def is_function(value: Any) -> bool:
    return callable(value) and not isinstance(value, type)


def is_array(value: Any) -> bool:
    """True for list-like sequences (lists and tuples, not strings)."""
    return isinstance(value, (list, tuple))


def is_hash(value: Any) -> bool:
    """True for mappings."""
    return isinstance(value, Mapping)


def is_object(value: Any) -> bool:
    """True for anything that can hold keyed members: mappings and sequences."""
    if isinstance(value, (str, bytes)):
        return False
    return isinstance(value, (Mapping, Sequence, set, frozenset))


def is_date(value: Any) -> bool:
    """True for date and datetime instances."""
    return isinstance(value, date)


def is_promise(value: Any) -> bool:
    """True for awaitables (coroutines, tasks, futures)."""
    return inspect.isawaitable(value)


def is_empty(value: Any) -> bool:
    """Whether a value counts as blank.

    None, whitespace-only strings, and empty collections are empty.
    Numbers, booleans, dates and callables never are.
    """
    if value is None:
        return True
    if is_function(value):
        return False
    if isinstance(value, str):
        return not value.strip()
    if is_date(value) or isinstance(value, (bool, Number)):
        return False
    if isinstance(value, (Mapping, Sequence, set, frozenset)):
        return len(value) == 0
    return False


def capitalize(value: Any) -> Any:
    """Upper-case the first character of a string; other values pass through."""
    if not is_string(value) or not value:
        return value
    return value[0].upper() + value[1:]


def result(value: Any, *args: Any) -> Any:
    """Call value with args when it is a function, otherwise return it."""
    if is_function(value):
        return value(*args)
    return value


def contains(collection: Any, value: Any) -> bool:
    """Membership test over lists (by element) and mappings (by key)."""
    if collection is None:
        return False
    if is_hash(collection):
        try:
            return value in collection
        except TypeError:
            return False
    if isinstance(collection, (str, bytes)):
        return False
    try:
        return value in collection
    except TypeError:
        return False


def extend(obj: dict, *others: Mapping | None) -> dict:
    """Shallow-merge the other mappings into obj, left to right, and return it."""
    for other in others:
        if other:
            obj.update(other)
    return obj


def unique(values: Iterable[Any]) -> list[Any]:
    """Drop duplicates keeping first-seen order."""
    seen: list[Any] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def split_keypath(keypath: str) -> Iterator[str]:
    """Split a dotted key path, honouring backslash escapes.

    ``"a.b"`` yields ``a``, ``b``; ``"a\\.b"`` yields the single key ``a.b``.
    """
    key = ""
    escape = False
    for char in keypath:
        if char == "." and not escape:
            yield key
            key = ""
        elif char == "\\" and not escape:
            escape = True
            continue
        else:
            key += char
        escape = False
    yield key


def _child(obj: Any, key: str) -> tuple[bool, Any]:
    if is_hash(obj):
        if key in obj:
            return True, obj[key]
        return False, None
    if is_array(obj) and key.isdigit():
        index = int(key)
        if index < len(obj):
            return True, obj[index]
    return False, None


def get_deep_object_value(obj: Any, keypath: str) -> Any:
    """Look up a value inside nested mappings by dotted key path.

    Returns None when any segment is missing.

    Example:
        >>> get_deep_object_value({"person": {"name": "Nick"}}, "person.name")
        'Nick'
    """
    if not is_object(obj):
        return None
    current = obj
    for key in split_keypath(keypath):
        found, current = _child(current, key)
        if not found:
            return None
    return current


def for_each_key_in_keypath(
    obj: dict, keypath: str, callback: Callable[[dict, str, bool], Any]
) -> Any:
    """Walk keypath through obj, letting callback produce each next level."""
    keys = list(split_keypath(keypath))
    for index, key in enumerate(keys):
        obj = callback(obj, key, index == len(keys) - 1)
    return obj


def _build_whitelist(whitelist: Mapping[str, Any]) -> dict:
    def creator(node: dict, key: str, last: bool) -> Any:
        if is_hash(node.get(key)):
            return node[key]
        node[key] = True if last else {}
        return node[key]

    tree: dict = {}
    for attribute, spec in whitelist.items():
        if spec is None or spec is False:
            continue
        for_each_key_in_keypath(tree, attribute, creator)
    return tree


def _clean(attributes: Any, whitelist: Mapping[str, Any]) -> Any:
    if not is_hash(attributes):
        return attributes
    cleaned = dict(attributes)
    for attribute in attributes:
        allowed = whitelist.get(attribute)
        if is_hash(allowed):
            cleaned[attribute] = _clean(cleaned[attribute], allowed)
        elif not allowed:
            del cleaned[attribute]
    return cleaned


def clean_attributes(attributes: Any, whitelist: Any) -> dict:
    """Return a copy of attributes holding only keys named in whitelist.

    Whitelist keys may be dotted paths, in which case only the named nested
    keys survive. Whitelist entries mapped to None or False are ignored.

    Example:
        >>> clean_attributes({"a": 1, "b": {"c": 2, "d": 3}}, {"b.c": True})
        {'b': {'c': 2}}
    """
    if not is_hash(whitelist) or not is_hash(attributes):
        return {}
    return _clean(attributes, _build_whitelist(whitelist))


__all__ = [
    "capitalize",
    "clean_attributes",
    "contains",
    "extend",
    "for_each_key_in_keypath",
    "get_deep_object_value",
    "is_array",
    "is_boolean",
    "is_date",
    "is_defined",
    "is_empty",
    "is_function",
    "is_hash",
    "is_integer",
    "is_number",
    "is_object",
    "is_promise",
    "is_string",
    "result",
    "split_keypath",
    "unique",
]
