"""Resolve repeatableBlockRef references into concrete field sets.

A repeatable block may borrow the fields of a non-repeatable block instead
of duplicating them. Resolution clones the referenced fields with ids
rewritten to ``<groupId>.<fieldId>`` and tags them with the group id, where
the group id is the block id without a trailing ``-block`` suffix
(``addresses-block`` -> ``addresses``).

Reference chains (A -> B -> C) resolve to the terminal block's fields and
are prefixed once, with A's group id. Self references and cycles fail with
the full path in the message.
"""

from __future__ import annotations

import logging

from formengine.descriptor.models import (
    BlockDescriptor,
    FieldDescriptor,
    GlobalFormDescriptor,
)
from formengine.errors import (
    BlockNotFoundError,
    CircularReferenceError,
    NotRepeatableError,
    RepeatableReferenceError,
)

__all__ = ["repeatable_group_id", "resolve_repeatable_blocks"]

logger = logging.getLogger(__name__)

_BLOCK_SUFFIX = "-block"


def repeatable_group_id(block_id: str) -> str:
    """Derive a repeatable group id from a block id."""
    if block_id.endswith(_BLOCK_SUFFIX):
        return block_id[: -len(_BLOCK_SUFFIX)]
    return block_id


def _terminal_fields(
    block: BlockDescriptor,
    blocks_by_id: dict[str, BlockDescriptor],
    known_ids: list[str],
    path: list[str],
) -> list[FieldDescriptor]:
    """Follow ``block``'s reference chain and return the terminal block's fields."""
    referenced_id = block.repeatable_block_ref
    assert referenced_id is not None

    if referenced_id == block.id:
        raise CircularReferenceError(
            f'Block "{block.id}" references itself (circular dependency)',
            path=[*path, block.id, block.id],
        )

    current_path = [*path, block.id]
    if referenced_id in current_path:
        cycle = [*current_path, referenced_id]
        raise CircularReferenceError(
            "Circular dependency detected in repeatable block reference: "
            + " -> ".join(cycle),
            path=cycle,
        )

    referenced = blocks_by_id.get(referenced_id)
    if referenced is None:
        raise BlockNotFoundError(referenced_id, known_ids)

    if referenced.repeatable:
        raise RepeatableReferenceError(
            f'Referenced block "{referenced_id}" cannot be repeatable. '
            "Only non-repeatable blocks can be referenced."
        )

    if referenced.repeatable_block_ref:
        return _terminal_fields(referenced, blocks_by_id, known_ids, current_path)
    return referenced.fields


def _resolve_block(
    block: BlockDescriptor,
    blocks_by_id: dict[str, BlockDescriptor],
    known_ids: list[str],
) -> BlockDescriptor:
    source_fields = _terminal_fields(block, blocks_by_id, known_ids, [])
    group_id = repeatable_group_id(block.id)
    fields = [
        field.model_copy(
            update={"id": f"{group_id}.{field.id}", "repeatable_group_id": group_id}
        )
        for field in source_fields
    ]
    logger.debug(
        "Resolved block %s -> %s (%d fields, group %s)",
        block.id,
        block.repeatable_block_ref,
        len(fields),
        group_id,
    )
    return block.model_copy(update={"fields": fields, "repeatable_block_ref": None})


def resolve_repeatable_blocks(descriptor: GlobalFormDescriptor) -> GlobalFormDescriptor:
    """Resolve every repeatableBlockRef in ``descriptor``.

    A block carrying a reference must be repeatable, unless it is itself
    the target of another block's reference (an intermediate link of a
    chain). Resolving an already-resolved descriptor is a no-op.

    Raises:
        NotRepeatableError: A referencing block is not marked repeatable
        CircularReferenceError: A block references itself or a cycle exists
        BlockNotFoundError: A referenced block id is unknown
        RepeatableReferenceError: A referenced block is itself repeatable
    """
    if not any(block.repeatable_block_ref for block in descriptor.blocks):
        return descriptor

    blocks_by_id = {block.id: block for block in descriptor.blocks}
    known_ids = [block.id for block in descriptor.blocks]
    chain_targets = {
        block.repeatable_block_ref
        for block in descriptor.blocks
        if block.repeatable_block_ref
    }

    resolved: list[BlockDescriptor] = []
    for block in descriptor.blocks:
        if not block.repeatable_block_ref:
            resolved.append(block)
            continue
        if not block.repeatable and block.id not in chain_targets:
            raise NotRepeatableError(
                f'Block "{block.id}" references "{block.repeatable_block_ref}" '
                "but is not marked repeatable"
            )
        resolved.append(_resolve_block(block, blocks_by_id, known_ids))

    return descriptor.model_copy(update={"blocks": resolved})
