"""Derive initial form values from field default values.

A default value is either a literal or a template string. Templates are
evaluated against the form context and converted to the field's value type.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from formengine.descriptor.models import FieldType, GlobalFormDescriptor
from formengine.templates import evaluate_template, has_placeholders, parse_boolean_result

__all__ = [
    "evaluate_default_value",
    "extract_default_values",
    "fields_with_template_defaults",
]

_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")

_EMPTY_VALUES: dict[FieldType, Any] = {
    FieldType.CHECKBOX: False,
    FieldType.FILE: None,
    FieldType.NUMBER: None,
}


def _parse_number(text: str) -> int | float:
    """Parse a number, falling back to 0."""
    trimmed = text.strip()
    if not trimmed:
        return 0
    try:
        number = float(trimmed)
    except ValueError:
        return 0
    if number != number:  # NaN
        return 0
    return int(number) if number.is_integer() and "." not in trimmed else number


def evaluate_default_value(
    default_value: Any, field_type: FieldType | str, context: Mapping[str, Any]
) -> Any:
    """Evaluate a field's default value.

    Non-string values and strings without template syntax are returned
    unchanged. Template results are converted by field type: checkbox uses
    the boolean rule, number parses (0 on failure), radio becomes a number
    when purely numeric, file becomes None when empty or "null".
    """
    if not isinstance(default_value, str) or not has_placeholders(default_value):
        return default_value

    evaluated = evaluate_template(default_value, context)
    field_type = FieldType(field_type)

    if field_type is FieldType.CHECKBOX:
        return parse_boolean_result(evaluated)
    if field_type is FieldType.NUMBER:
        return _parse_number(evaluated)
    if field_type is FieldType.RADIO:
        if _NUMERIC.match(evaluated.strip()):
            return _parse_number(evaluated)
        return evaluated
    if field_type is FieldType.FILE:
        trimmed = evaluated.strip()
        if not trimmed or trimmed.lower() == "null":
            return None
        return evaluated
    return evaluated


def extract_default_values(
    descriptor: GlobalFormDescriptor, context: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """Give every field an initial value.

    Fields without a default get a type-appropriate empty value ("" for
    string-like fields, False for checkboxes, None for files and numbers).
    """
    context = context or {}
    values: dict[str, Any] = {}
    for field in descriptor.iter_fields():
        if field.default_value is not None:
            values[field.id] = evaluate_default_value(
                field.default_value, field.type, context
            )
        else:
            values[field.id] = _EMPTY_VALUES.get(field.type, "")
    return values


def fields_with_template_defaults(descriptor: GlobalFormDescriptor | None) -> set[str]:
    """Ids of fields whose default value is a template."""
    if descriptor is None:
        return set()
    return {
        field.id
        for field in descriptor.iter_fields()
        if isinstance(field.default_value, str) and has_placeholders(field.default_value)
    }
