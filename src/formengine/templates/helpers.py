"""Helper functions exposed to descriptor templates.

Comparison, logic and data helpers used by status conditions and
transformation templates. Values follow JSON semantics: booleans never
compare equal to numbers, and undefined template values behave like None.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

from jinja2 import Undefined

__all__ = ["HELPERS", "HELPER_NAMES", "to_display"]


def _plain(value: Any) -> Any:
    """Map jinja2 Undefined to None so helpers see a single "missing" value."""
    if isinstance(value, Undefined):
        return None
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def eq(a: Any, b: Any) -> bool:
    a, b = _plain(a), _plain(b)
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if _is_number(a) != _is_number(b):
        return False
    return a == b


def ne(a: Any, b: Any) -> bool:
    return not eq(a, b)


def _ordered(a: Any, b: Any) -> bool:
    """True when both values are numbers, or both strings."""
    if _is_number(a) and _is_number(b):
        return True
    return isinstance(a, str) and isinstance(b, str)


def gt(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a > b


def lt(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a < b


def gte(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a >= b


def lte(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a <= b


def _truthy(value: Any) -> bool:
    # JSON/JS truthiness: empty containers are truthy, NaN is not
    value = _plain(value)
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if _is_number(value):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    return True


def and_(*values: Any) -> bool:
    return all(_truthy(v) for v in values)


def or_(*values: Any) -> bool:
    return any(_truthy(v) for v in values)


def not_(value: Any) -> bool:
    return not _truthy(value)


def contains(collection: Any, value: Any) -> bool:
    """Array membership or substring test."""
    collection, value = _plain(collection), _plain(value)
    if isinstance(collection, (list, tuple)):
        return any(eq(item, value) for item in collection)
    if isinstance(collection, str):
        return to_display(value) in collection
    return False


def is_empty(value: Any) -> bool:
    """True for None/undefined, empty strings, empty arrays and empty objects."""
    value = _plain(value)
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) == 0
    return False


def to_json(value: Any, fallback: Any = None) -> str:
    """Serialize a value to JSON without ever raising.

    Args:
        value: Value to serialize
        fallback: Optional JSON literal returned for None/undefined values or
            when serialization fails (e.g. ``json(items, "[]")``)
    """
    value = _plain(value)
    fallback = _plain(fallback)
    literal = fallback if isinstance(fallback, str) else None
    if value is None:
        return literal if literal is not None else "null"
    try:
        return json.dumps(value, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError):
        default = "[]" if isinstance(value, (list, tuple)) else "{}"
        return literal if literal is not None else default


def to_display(value: Any) -> str:
    """Render a value the way a JSON-minded template reader expects."""
    value = _plain(value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_display(item) for item in value)
    return str(value)


def if_truthy(value: Any) -> bool:
    """Condition of ``#if``/``#unless``/``#with``: falsy values and empty arrays fail."""
    value = _plain(value)
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return _truthy(value)


def each_pairs(value: Any) -> list[tuple[Any, Any]]:
    """Iteration of ``#each``: (index, item) for arrays, (key, value) for objects."""
    value = _plain(value)
    if isinstance(value, Mapping):
        return list(value.items())
    if isinstance(value, (list, tuple)):
        return list(enumerate(value))
    return []


#: Helpers registered as template globals.
HELPERS: dict[str, Any] = {
    "eq": eq,
    "ne": ne,
    "gt": gt,
    "lt": lt,
    "gte": gte,
    "lte": lte,
    "and_": and_,
    "or_": or_,
    "not_": not_,
    "contains": contains,
    "isEmpty": is_empty,
    "json": to_json,
    "_if": if_truthy,
    "_each": each_pairs,
}

#: Helper names usable in templates, mapped to their template global.
HELPER_NAMES: dict[str, str] = {
    "eq": "eq",
    "ne": "ne",
    "gt": "gt",
    "lt": "lt",
    "gte": "gte",
    "lte": "lte",
    "and": "and_",
    "or": "or_",
    "not": "not_",
    "contains": "contains",
    "isEmpty": "isEmpty",
    "json": "json",
}
