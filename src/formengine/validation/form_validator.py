"""Validate a complete set of form values against a (merged) descriptor.

Used server-side before accepting a submission: every field's rules are
run through the rule translator, and fields with options (static items or a
data source) are checked for membership.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from formengine.descriptor.models import FieldDescriptor, FieldItem, GlobalFormDescriptor
from formengine.errors import DataSourceConfigError, TransportError
from formengine.templates import evaluate_hidden_status
from formengine.validation.translator import to_validator

if TYPE_CHECKING:
    from formengine.datasources.loader import DataSourceLoader

__all__ = ["INVALID_OPTION", "ValidationError", "validate_field", "validate_form_values"]

logger = logging.getLogger(__name__)

INVALID_OPTION = "INVALID_OPTION"


@dataclass(frozen=True)
class ValidationError:
    """A field-level validation failure."""

    field: str
    message: str
    code: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def validate_field(field: FieldDescriptor, value: Any) -> list[ValidationError]:
    """Run a field's validation rules against ``value``."""
    if not field.validation:
        return []
    validator = to_validator(field.validation, field.type)
    return [ValidationError(field=field.id, message=m) for m in validator.errors(value)]


def _same_value(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    return a == b


def _is_option(value: Any, options: list[FieldItem]) -> bool:
    return any(_same_value(value, option.value) for option in options)


async def _options_for(
    field: FieldDescriptor,
    context: Mapping[str, Any],
    loader: DataSourceLoader | None,
) -> list[FieldItem] | None:
    if field.items is not None:
        return field.items
    if field.data_source is None or loader is None:
        return None
    try:
        return await loader.load(field.data_source, context, field_id=field.id)
    except (TransportError, DataSourceConfigError) as exc:
        logger.warning("Skipping option check for %s: %s", field.id, exc)
        return None


async def validate_form_values(
    descriptor: GlobalFormDescriptor,
    form_values: Mapping[str, Any],
    *,
    loader: DataSourceLoader | None = None,
    context: Mapping[str, Any] | None = None,
) -> list[ValidationError]:
    """Validate every field of ``descriptor``.

    Args:
        descriptor: Descriptor already merged with the current rules
        form_values: Values keyed by field id
        loader: When given, data-source fields are checked for membership
        context: When given, fields hidden in this context are skipped

    Returns:
        Errors in document order; rule errors precede the option error of
        the same field.
    """
    errors: list[ValidationError] = []
    scope: dict[str, Any] = {**(context or {}), **form_values}

    for field in descriptor.iter_fields():
        if context is not None and evaluate_hidden_status(field, scope):
            logger.debug("Skipping hidden field %s", field.id)
            continue

        value = form_values.get(field.id)
        field_errors = validate_field(field, value)
        errors.extend(field_errors)
        if field_errors or value is None or value == "":
            continue

        options = await _options_for(field, scope, loader)
        if options is None:
            continue
        candidates = value if isinstance(value, list) else [value]
        for candidate in candidates:
            if not _is_option(candidate, options):
                errors.append(
                    ValidationError(
                        field=field.id,
                        message=f'"{candidate}" is not a valid option for {field.label}',
                        code=INVALID_OPTION,
                    )
                )
                break
    return errors
