"""Extract the discriminant case context from form values.

The case context is a small flat map sent to the rules service. It is seeded
from the case prefill and then kept in sync with the values of fields marked
``isDiscriminant``. Changes are detected structurally, through a canonical
JSON serialization, so that only real changes trigger a re-hydration.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from formengine.descriptor.models import (
    CaseContext,
    CasePrefill,
    FieldDescriptor,
    GlobalFormDescriptor,
)

__all__ = [
    "canonical_context",
    "get_discriminant_fields",
    "has_context_changed",
    "identify_discriminant_fields",
    "initialize_case_context",
    "update_case_context",
]

logger = logging.getLogger(__name__)

_MISSING = object()


def initialize_case_context(prefill: CasePrefill | Mapping[str, Any]) -> CaseContext:
    """Project the case prefill onto the initial case context.

    >>> initialize_case_context({"incorporationCountry": "FR", "processType": "standard"})
    {'incorporationCountry': 'FR', 'processType': 'standard'}
    """
    if not isinstance(prefill, CasePrefill):
        prefill = CasePrefill.model_validate(prefill)

    context: CaseContext = {}
    if prefill.incorporation_country is not None:
        context["incorporationCountry"] = prefill.incorporation_country
    if prefill.onboarding_countries is not None:
        context["onboardingCountries"] = list(prefill.onboarding_countries)
    if prefill.process_type is not None:
        context["processType"] = prefill.process_type
    if prefill.need_signature is not None:
        context["needSignature"] = prefill.need_signature
    if isinstance(prefill.addresses, list):
        context["addresses"] = [dict(address) for address in prefill.addresses]
    return context


def identify_discriminant_fields(
    fields: Iterable[FieldDescriptor],
) -> list[FieldDescriptor]:
    """Filter fields marked ``isDiscriminant``."""
    return [field for field in fields if field.is_discriminant]


def get_discriminant_fields(
    descriptor: GlobalFormDescriptor | None,
) -> list[FieldDescriptor]:
    """All discriminant fields of a descriptor, in document order."""
    if descriptor is None:
        return []
    return identify_discriminant_fields(descriptor.iter_fields())


def _read_value(form_values: Mapping[str, Any], field_id: str) -> Any:
    """Read a value by flat key first, then by dotted path."""
    if field_id in form_values:
        return form_values[field_id]
    current: Any = form_values
    for part in field_id.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _is_context_value(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool, list))


def update_case_context(
    current: CaseContext,
    form_values: Mapping[str, Any],
    discriminant_fields: Iterable[FieldDescriptor],
) -> CaseContext:
    """Return a copy of ``current`` with discriminant values overwritten.

    Fields whose value is missing from ``form_values`` leave the context
    untouched, and values that cannot appear in a case context (objects,
    files) are ignored.
    """
    updated: CaseContext = dict(current)
    for field in discriminant_fields:
        value = _read_value(form_values, field.id)
        if value is _MISSING:
            continue
        if not _is_context_value(value):
            logger.debug(
                "Ignoring discriminant %s: unsupported value type %s",
                field.id,
                type(value).__name__,
            )
            continue
        updated[field.id] = list(value) if isinstance(value, list) else value
    return updated


def canonical_context(context: Mapping[str, Any]) -> str:
    """Serialize a context deterministically (sorted keys, compact separators)."""
    return json.dumps(context, sort_keys=True, separators=(",", ":"), default=str)


def has_context_changed(old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
    """Structural inequality, independent of key order.

    ``True`` and ``1`` are distinct values, as they are in JSON.

    >>> has_context_changed({"a": 1, "b": 2}, {"b": 2, "a": 1})
    False
    >>> has_context_changed({"a": True}, {"a": 1})
    True
    """
    return canonical_context(old) != canonical_context(new)
