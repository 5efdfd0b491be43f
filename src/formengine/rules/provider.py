"""Server-side production of RulesObjects from a case context.

A ``RulesProvider`` turns a validated CaseContext into the partial update the
client merges into its descriptor. ``RuleTableProvider`` is the declarative
implementation: each entry pairs a condition template with a RulesObject, and
the updates of every matching entry are concatenated in table order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from formengine.descriptor.models import CaseContext, RulesObject
from formengine.templates import evaluate_template, parse_boolean_result
from formengine.validation.form_validator import ValidationError

__all__ = [
    "RuleEntry",
    "RuleTableProvider",
    "RulesProvider",
    "validate_case_context",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class RulesProvider(Protocol):
    """Produces the rules update for a case context."""

    def rules_for(self, context: CaseContext) -> RulesObject: ...


@dataclass(frozen=True)
class RuleEntry:
    """One row of a rule table.

    Attributes:
        when: Condition template; the entry applies when it renders "true"
            or "1". An empty condition always applies.
        rules: Update contributed when the condition holds.
    """

    when: str
    rules: RulesObject

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RuleEntry:
        return cls(
            when=data.get("when", ""),
            rules=RulesObject.model_validate(data.get("rules", {})),
        )

    def applies(self, context: Mapping[str, Any]) -> bool:
        if not self.when:
            return True
        return parse_boolean_result(evaluate_template(self.when, context))


class RuleTableProvider:
    """RulesProvider backed by an ordered table of conditional updates.

    Example:
        provider = RuleTableProvider([
            RuleEntry(
                when='{{eq country "US"}}',
                rules=RulesObject(fields=[FieldRules(id="phone", validation=[...])]),
            ),
        ])
        provider.rules_for({"country": "US"})
    """

    def __init__(self, entries: Iterable[RuleEntry] = ()) -> None:
        self.entries: list[RuleEntry] = list(entries)

    @classmethod
    def from_json(cls, data: Sequence[Mapping[str, Any]]) -> RuleTableProvider:
        """Build a table from ``[{"when": ..., "rules": {...}}, ...]``."""
        return cls(RuleEntry.from_dict(entry) for entry in data)

    @classmethod
    def from_file(cls, path: Path) -> RuleTableProvider:
        return cls.from_json(json.loads(path.read_text(encoding="utf-8")))

    def rules_for(self, context: CaseContext) -> RulesObject:
        blocks = []
        fields = []
        for entry in self.entries:
            if entry.applies(context):
                blocks.extend(entry.rules.blocks or [])
                fields.extend(entry.rules.fields or [])
        logger.debug(
            "Rule table matched %d block and %d field update(s)",
            len(blocks),
            len(fields),
        )
        return RulesObject(blocks=blocks, fields=fields)


def validate_case_context(context: Mapping[str, Any]) -> list[ValidationError]:
    """Check that every context value is a scalar, null, or a list of strings."""
    errors: list[ValidationError] = []
    for key, value in context.items():
        if value is not None and not isinstance(value, (str, int, float, bool, list)):
            errors.append(
                ValidationError(
                    field=key,
                    message=(
                        f"Invalid type for field '{key}'. Expected string, number, "
                        "boolean, array or null."
                    ),
                    code="INVALID_TYPE",
                )
            )
        if isinstance(value, list) and not all(isinstance(item, str) for item in value):
            errors.append(
                ValidationError(
                    field=key,
                    message=f"Array field '{key}' must contain only string values.",
                    code="INVALID_ARRAY_ELEMENT",
                )
            )
    return errors
