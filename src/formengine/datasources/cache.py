"""Process-local response caches for data sources and popin loads.

Caches are explicit objects injected into the loaders, never module
globals, so hosts and tests control their lifetime. Entries never expire;
``clear()`` empties the cache.
"""

from __future__ import annotations

import copy
import logging
from typing import Generic, TypeVar

__all__ = ["ResponseCache"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResponseCache(Generic[T]):
    """Key -> value store returning deep copies on both write and read."""

    def __init__(self) -> None:
        self._entries: dict[str, T] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> T | None:
        value = self._entries.get(key)
        if value is None:
            return None
        logger.debug("Cache hit: %s", key)
        return copy.deepcopy(value)

    def set(self, key: str, value: T) -> None:
        self._entries[key] = copy.deepcopy(value)

    def clear(self) -> None:
        logger.debug("Clearing %d cached response(s)", len(self._entries))
        self._entries.clear()
