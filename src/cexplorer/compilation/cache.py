"""Byte-bounded LRU cache for compilation results."""

from __future__ import annotations

import logging
from collections import OrderedDict

from ..utils.serialization import to_json
from .models import CompilationResult

_LOGGER = logging.getLogger(__name__)


def entry_size(key: str, result: CompilationResult) -> int:
    """Accounted size: serialized result plus the key, in bytes."""

    return len(to_json(result.to_dict(), indent=None).encode("utf-8")) + len(key.encode("utf-8"))


class LRUByteCache:
    """Least-recently-used eviction against a byte budget.

    Only the event-loop thread touches the cache, so there is no locking.
    """

    def __init__(self, capacity_bytes: int) -> None:
        self._capacity = capacity_bytes
        self._entries: OrderedDict[str, tuple[CompilationResult, int]] = OrderedDict()
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> CompilationResult | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry[0]

    def put(self, key: str, result: CompilationResult) -> bool:
        """Store ``result``; returns False when it can never fit."""

        size = entry_size(key, result)
        if size > self._capacity:
            _LOGGER.debug("Not caching %d byte result (capacity %d)", size, self._capacity)
            return False
        previous = self._entries.pop(key, None)
        if previous is not None:
            self._size -= previous[1]
        while self._entries and self._size + size > self._capacity:
            _, (_, evicted_size) = self._entries.popitem(last=False)
            self._size -= evicted_size
        self._entries[key] = (result, size)
        self._size += size
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._size = 0


__all__ = ["LRUByteCache", "entry_size"]
