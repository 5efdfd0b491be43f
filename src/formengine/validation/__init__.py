"""Validation rule translation and whole-form validation."""

from formengine.validation.form_validator import (
    INVALID_OPTION,
    ValidationError,
    validate_field,
    validate_form_values,
)
from formengine.validation.translator import (
    FieldValidator,
    RuleCheck,
    ValueKind,
    compile_pattern,
    to_rule_map,
    to_schema,
    to_validator,
    value_kind,
)

__all__ = [
    "INVALID_OPTION",
    "FieldValidator",
    "RuleCheck",
    "ValidationError",
    "ValueKind",
    "compile_pattern",
    "to_rule_map",
    "to_schema",
    "to_validator",
    "validate_field",
    "validate_form_values",
]
