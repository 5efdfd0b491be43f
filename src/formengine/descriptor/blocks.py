"""Look up blocks by id, e.g. to open the popin a button points at."""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from formengine.descriptor.models import BlockDescriptor, GlobalFormDescriptor
from formengine.templates import evaluate_disabled_status, evaluate_hidden_status

__all__ = ["BlockLookupCache", "ResolvedBlock"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedBlock:
    """A block together with its status evaluated against a form context."""

    block: BlockDescriptor
    is_hidden: bool
    is_disabled: bool


class BlockLookupCache:
    """Id -> block maps, one per descriptor object.

    Descriptors are frozen, so a map stays valid for as long as the same
    descriptor object is passed in. A merged or re-resolved descriptor is a
    new object and gets a fresh map. Only the ``max_entries`` most recently
    used maps are kept.
    """

    def __init__(self, max_entries: int = 8) -> None:
        self.max_entries = max_entries
        # Entries hold the descriptor so its id() cannot be reused
        self._maps: OrderedDict[
            int, tuple[GlobalFormDescriptor, dict[str, BlockDescriptor]]
        ] = OrderedDict()

    def __len__(self) -> int:
        return len(self._maps)

    def block_map(self, descriptor: GlobalFormDescriptor) -> dict[str, BlockDescriptor]:
        key = id(descriptor)
        entry = self._maps.get(key)
        if entry is not None:
            self._maps.move_to_end(key)
            return entry[1]
        block_map = {block.id: block for block in descriptor.blocks}
        self._maps[key] = (descriptor, block_map)
        while len(self._maps) > self.max_entries:
            self._maps.popitem(last=False)
        return block_map

    def resolve(
        self,
        block_id: str,
        descriptor: GlobalFormDescriptor,
        form_context: Mapping[str, Any],
    ) -> ResolvedBlock | None:
        """Return the block with evaluated status, or None if it is unknown."""
        block_map = self.block_map(descriptor)
        block = block_map.get(block_id)
        if block is None:
            logger.error(
                'Block "%s" not found. Available blocks: %s',
                block_id,
                ", ".join(block_map) or "none",
            )
            return None
        return ResolvedBlock(
            block=block,
            is_hidden=evaluate_hidden_status(block, form_context),
            is_disabled=evaluate_disabled_status(block, form_context),
        )

    def clear(self) -> None:
        self._maps.clear()
