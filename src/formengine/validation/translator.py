"""Translate descriptor validation rules into executable validators.

The same rule list is exposed two ways:

- ``to_rule_map``: a flat per-rule-type map of checks (``required``,
  ``minLength``, ``maxLength``, ``pattern``, ``validate``) for field-level
  integrations
- ``to_schema``: a pydantic ``TypeAdapter`` whose base type matches the
  field type and whose rules are folded on as ``AfterValidator`` steps

``to_validator`` bundles both behind a single callable. Both projections
agree on pass/fail for identical inputs: a None value is "absent" and only
``required`` rejects it, and a value of the wrong type fails both.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import (
    AfterValidator,
    Strict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
)
from pydantic_core import PydanticCustomError

from formengine.descriptor.models import (
    CustomRule,
    FieldType,
    MaxLengthRule,
    MinLengthRule,
    PatternRule,
    RequiredRule,
    ValidationRule,
)

__all__ = [
    "FieldValidator",
    "RuleCheck",
    "ValueKind",
    "compile_pattern",
    "to_rule_map",
    "to_schema",
    "to_validator",
    "value_kind",
]

#: A single check: returns an error message, or None when the value passes.
RuleCheck = Callable[[Any], Optional[str]]


class ValueKind(str, Enum):
    """Value representation selected from a field type."""

    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    CHOICE = "choice"  # radio: string or number
    FILE = "file"  # URL string, list of URL strings, or None
    NONE = "none"  # buttons carry no value


_KIND_BY_FIELD_TYPE: dict[FieldType, ValueKind] = {
    FieldType.TEXT: ValueKind.STRING,
    FieldType.DROPDOWN: ValueKind.STRING,
    FieldType.AUTOCOMPLETE: ValueKind.STRING,
    FieldType.DATE: ValueKind.STRING,
    FieldType.CHECKBOX: ValueKind.BOOLEAN,
    FieldType.NUMBER: ValueKind.NUMBER,
    FieldType.RADIO: ValueKind.CHOICE,
    FieldType.FILE: ValueKind.FILE,
    FieldType.BUTTON: ValueKind.NONE,
}

_BASE_TYPES: dict[ValueKind, Any] = {
    ValueKind.STRING: StrictStr,
    ValueKind.BOOLEAN: StrictBool,
    ValueKind.NUMBER: Union[StrictInt, StrictFloat],
    ValueKind.CHOICE: Union[StrictStr, StrictInt, StrictFloat],
    ValueKind.FILE: Union[StrictStr, Annotated[list[StrictStr], Strict()]],
    ValueKind.NONE: Any,
}

_TYPE_MESSAGES: dict[ValueKind, str] = {
    ValueKind.STRING: "Expected a string value",
    ValueKind.BOOLEAN: "Expected a boolean value",
    ValueKind.NUMBER: "Expected a numeric value",
    ValueKind.CHOICE: "Expected a string or numeric value",
    ValueKind.FILE: "Expected a file reference or a list of file references",
}

# Rule type -> key in the flat rule map
_MAP_KEYS = {
    "required": "required",
    "minLength": "minLength",
    "maxLength": "maxLength",
    "pattern": "pattern",
    "custom": "validate",
}


def value_kind(field_type: FieldType | str) -> ValueKind:
    """Select the value representation for a field type."""
    return _KIND_BY_FIELD_TYPE[FieldType(field_type)]


def compile_pattern(value: str | re.Pattern) -> re.Pattern:
    """Normalize a regex-source string (e.g. from JSON) to a compiled pattern."""
    if isinstance(value, re.Pattern):
        return value
    return re.compile(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _has_kind(kind: ValueKind, value: Any) -> bool:
    if kind is ValueKind.STRING:
        return isinstance(value, str)
    if kind is ValueKind.BOOLEAN:
        return isinstance(value, bool)
    if kind is ValueKind.NUMBER:
        return _is_number(value)
    if kind is ValueKind.CHOICE:
        return isinstance(value, str) or _is_number(value)
    if kind is ValueKind.FILE:
        if isinstance(value, list):
            return all(isinstance(item, str) for item in value)
        return isinstance(value, str)
    return True


def _type_check(kind: ValueKind, value: Any) -> str | None:
    if value is None or _has_kind(kind, value):
        return None
    return _TYPE_MESSAGES[kind]


def _is_present(kind: ValueKind, value: Any) -> bool:
    if value is None:
        return False
    if kind is ValueKind.STRING:
        return value != ""
    if kind is ValueKind.BOOLEAN:
        return value is True
    if kind is ValueKind.NUMBER:
        return not math.isnan(value)
    if kind is ValueKind.CHOICE:
        return value != "" if isinstance(value, str) else not math.isnan(value)
    return True


def _rule_check(rule: Any, kind: ValueKind) -> RuleCheck | None:
    """Build the check for one rule, or None if it does not apply to ``kind``."""
    message = rule.message

    if isinstance(rule, RequiredRule):
        return lambda value: None if _is_present(kind, value) else message

    if isinstance(rule, CustomRule):
        predicate = rule.value

        def check_custom(value: Any) -> str | None:
            if value is None:
                return None
            result = predicate.check(value)
            if result is True:
                return None
            if isinstance(result, str) and result:
                return result
            return message

        return check_custom

    # Length and pattern rules only apply to string-like fields
    if kind is not ValueKind.STRING:
        return None

    if isinstance(rule, MinLengthRule):
        limit = rule.value
        return lambda value: message if value is not None and len(value) < limit else None

    if isinstance(rule, MaxLengthRule):
        limit = rule.value
        return lambda value: message if value is not None and len(value) > limit else None

    if isinstance(rule, PatternRule):
        regex = compile_pattern(rule.value)
        return lambda value: (
            message if value is not None and regex.search(value) is None else None
        )

    return None


def _chain(first: RuleCheck, second: RuleCheck) -> RuleCheck:
    """Compose two checks left-to-right, stopping at the first failure."""

    def chained(value: Any) -> str | None:
        return first(value) or second(value)

    return chained


def _compiled_checks(
    rules: Sequence[ValidationRule] | None, kind: ValueKind
) -> list[tuple[str, RuleCheck]]:
    checks: list[tuple[str, RuleCheck]] = []
    for rule in rules or ():
        check = _rule_check(rule, kind)
        if check is not None:
            checks.append((rule.type, check))
    return checks


def _grouped_checks(
    rules: Sequence[ValidationRule] | None, kind: ValueKind
) -> list[tuple[str, RuleCheck]]:
    """One chained check per rule type, ordered by each type's first rule."""
    grouped: dict[str, RuleCheck] = {}
    for rule_type, check in _compiled_checks(rules, kind):
        existing = grouped.get(rule_type)
        grouped[rule_type] = check if existing is None else _chain(existing, check)
    return list(grouped.items())


def to_rule_map(
    rules: Sequence[ValidationRule] | None, field_type: FieldType | str = FieldType.TEXT
) -> dict[str, RuleCheck]:
    """Project rules onto a flat per-rule-type map of checks.

    Rules of the same type (e.g. two ``pattern`` rules appended by a merge,
    or several ``custom`` rules) compose left-to-right and short-circuit on
    the first failure. Rules that do not apply to the field type are left
    out of the map. Every check rejects values of the wrong type first.
    """
    kind = value_kind(field_type)
    return {
        _MAP_KEYS[rule_type]: _typed(kind, check)
        for rule_type, check in _grouped_checks(rules, kind)
    }


def _typed(kind: ValueKind, check: RuleCheck) -> RuleCheck:
    def typed(value: Any) -> str | None:
        return _type_check(kind, value) or check(value)

    return typed


def _as_after_validator(rule_type: str, check: RuleCheck) -> AfterValidator:
    def validate(value: Any) -> Any:
        message = check(value)
        if message is not None:
            raise PydanticCustomError(rule_type, message)
        return value

    return AfterValidator(validate)


def to_schema(
    rules: Sequence[ValidationRule] | None, field_type: FieldType | str = FieldType.TEXT
) -> TypeAdapter:
    """Project rules onto a pydantic schema for the field type.

    The base type is optional (None means "absent"); each applicable rule is
    an ``AfterValidator`` raising a custom error that carries the rule's
    message.
    """
    kind = value_kind(field_type)
    base = Optional[_BASE_TYPES[kind]]
    validators = [
        _as_after_validator(rule_type, check)
        for rule_type, check in _compiled_checks(rules, kind)
    ]
    if not validators:
        return TypeAdapter(base)
    return TypeAdapter(Annotated[(base, *validators)])


@dataclass
class FieldValidator:
    """Executable validator for one field's rule list.

    Calling the validator returns the first error message, or None.
    """

    field_type: FieldType
    rules: list[ValidationRule]
    kind: ValueKind = field(init=False)
    _checks: list[tuple[str, RuleCheck]] = field(init=False, repr=False)
    _schema: TypeAdapter | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.kind = value_kind(self.field_type)
        self._checks = _grouped_checks(self.rules, self.kind)

    def __call__(self, value: Any) -> str | None:
        errors = self.errors(value)
        return errors[0] if errors else None

    def errors(self, value: Any) -> list[str]:
        """One message per failing rule type, in rule order.

        Rules of the same type stop at their first failure, and a type
        mismatch stands alone.
        """
        type_error = _type_check(self.kind, value)
        if type_error is not None:
            return [type_error]
        messages = []
        for _rule_type, check in self._checks:
            message = check(value)
            if message is not None:
                messages.append(message)
        return messages

    def is_valid(self, value: Any) -> bool:
        return not self.errors(value)

    @property
    def rule_map(self) -> dict[str, RuleCheck]:
        return to_rule_map(self.rules, self.field_type)

    @property
    def schema(self) -> TypeAdapter:
        if self._schema is None:
            self._schema = to_schema(self.rules, self.field_type)
        return self._schema

    def schema_errors(self, value: Any) -> list[str]:
        """Validate through the schema projection, returning error messages."""
        try:
            self.schema.validate_python(value)
        except ValidationError as exc:
            return [error["msg"] for error in exc.errors()]
        return []


def to_validator(
    rules: Sequence[ValidationRule] | None, field_type: FieldType | str = FieldType.TEXT
) -> FieldValidator:
    """Build the imperative validator for a rule list and field type."""
    return FieldValidator(field_type=FieldType(field_type), rules=list(rules or ()))
