"""Merge a rules-update document into a form descriptor.

Validation rules are appended and status templates merged key by key, so
the descriptor's original structure is never discarded. Ids present only in
the update are ignored.
"""

from __future__ import annotations

from formengine.descriptor.models import (
    BlockDescriptor,
    BlockRules,
    FieldDescriptor,
    FieldRules,
    GlobalFormDescriptor,
    RulesObject,
    StatusTemplates,
    ValidationRule,
)

__all__ = ["merge_descriptor_with_rules", "merge_status_templates", "merge_validation_rules"]


def merge_status_templates(
    existing: StatusTemplates | None, updates: StatusTemplates | None
) -> StatusTemplates | None:
    """Right-biased key merge: keys set in ``updates`` win, others survive."""
    if updates is None:
        return existing
    if existing is None:
        return updates
    overrides = updates.model_dump(exclude_none=True)
    if not overrides:
        return existing
    return existing.model_copy(update=overrides)


def merge_validation_rules(
    existing: list[ValidationRule], updates: list[ValidationRule] | None
) -> list[ValidationRule]:
    """Append ``updates`` to ``existing``; duplicates are kept in order."""
    if not updates:
        return existing
    return [*existing, *updates]


def _merge_field(field: FieldDescriptor, rules: FieldRules | None) -> FieldDescriptor:
    if rules is None:
        return field
    return field.model_copy(
        update={
            "validation": merge_validation_rules(field.validation, rules.validation),
            "status": merge_status_templates(field.status, rules.status),
        }
    )


def _merge_block(
    block: BlockDescriptor,
    block_rules: BlockRules | None,
    field_rules: dict[str, FieldRules],
) -> BlockDescriptor:
    fields = [_merge_field(field, field_rules.get(field.id)) for field in block.fields]
    status = merge_status_templates(
        block.status, block_rules.status if block_rules is not None else None
    )
    return block.model_copy(update={"fields": fields, "status": status})


def merge_descriptor_with_rules(
    descriptor: GlobalFormDescriptor, rules: RulesObject
) -> GlobalFormDescriptor:
    """Deep-merge ``rules`` into ``descriptor``, returning a new descriptor.

    Never raises on partial or empty update documents; an empty RulesObject
    yields a descriptor equal to the input.

    Example:
        >>> from formengine.descriptor.models import GlobalFormDescriptor, RulesObject
        >>> base = GlobalFormDescriptor.model_validate({
        ...     "blocks": [{"id": "b", "title": "B", "fields": []}],
        ...     "submission": {"url": "/submit", "method": "POST"},
        ... })
        >>> merge_descriptor_with_rules(base, RulesObject()) == base
        True
    """
    # One lookup map per call; later entries for the same id win
    field_rules = {rule.id: rule for rule in rules.fields or ()}
    block_rules = {rule.id: rule for rule in rules.blocks or ()}
    blocks = [
        _merge_block(block, block_rules.get(block.id), field_rules)
        for block in descriptor.blocks
    ]
    return descriptor.model_copy(update={"blocks": blocks})
