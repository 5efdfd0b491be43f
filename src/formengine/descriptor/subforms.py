"""Compose sub-form fragments into a flat GlobalFormDescriptor.

Blocks carrying ``subFormRef`` are replaced by the referenced sub-form's
blocks. Block ids become ``<subFormId>_<blockId>`` (or
``<subFormId>_<instanceId>_<blockId>`` when the reference carries an instance
id) and field ids gain an ``<instanceId>.`` prefix, so the same fragment can
be used twice (e.g. incorporation vs onboarding address).
"""

from __future__ import annotations

from collections.abc import Mapping

from formengine.descriptor.models import (
    BlockDescriptor,
    GlobalFormDescriptor,
    SubFormDescriptor,
)
from formengine.errors import CircularReferenceError, SubFormNotFoundError

__all__ = ["resolve_sub_forms"]


def _prefix_block(
    block: BlockDescriptor, sub_form_id: str, instance_id: str | None
) -> BlockDescriptor:
    block_prefix = f"{sub_form_id}_{instance_id}" if instance_id else sub_form_id
    fields = [
        field.model_copy(update={"id": f"{instance_id}.{field.id}"})
        if instance_id
        else field
        for field in block.fields
    ]
    return block.model_copy(
        update={
            "id": f"{block_prefix}_{block.id}",
            "fields": fields,
            "sub_form_ref": None,
            "sub_form_instance_id": None,
        }
    )


def _expand(
    block: BlockDescriptor,
    sub_forms: Mapping[str, SubFormDescriptor],
    path: list[str],
) -> list[BlockDescriptor]:
    sub_form_id = block.sub_form_ref
    assert sub_form_id is not None

    if sub_form_id in path:
        cycle = [*path, sub_form_id]
        raise CircularReferenceError(
            "Circular dependency detected in sub-form resolution: " + " -> ".join(cycle),
            path=cycle,
        )

    sub_form = sub_forms.get(sub_form_id)
    if sub_form is None:
        raise SubFormNotFoundError(sub_form_id, list(sub_forms))

    nested_path = [*path, sub_form_id]
    expanded: list[BlockDescriptor] = []
    for sub_block in sub_form.blocks:
        if sub_block.sub_form_ref:
            for nested in _expand(sub_block, sub_forms, nested_path):
                expanded.append(
                    _prefix_block(nested, sub_form.id, block.sub_form_instance_id)
                )
        else:
            expanded.append(
                _prefix_block(sub_block, sub_form.id, block.sub_form_instance_id)
            )
    return expanded


def resolve_sub_forms(
    descriptor: GlobalFormDescriptor, sub_forms: Mapping[str, SubFormDescriptor]
) -> GlobalFormDescriptor:
    """Replace every subFormRef block with the referenced sub-form's blocks.

    Raises:
        SubFormNotFoundError: A referenced sub-form is not in ``sub_forms``
        CircularReferenceError: Sub-forms reference each other in a cycle
    """
    blocks: list[BlockDescriptor] = []
    for block in descriptor.blocks:
        if block.sub_form_ref:
            blocks.extend(_expand(block, sub_forms, []))
        else:
            blocks.append(block)
    return descriptor.model_copy(update={"blocks": blocks})
