"""
Per-product serialization for ledger mutations.

Every read-modify-write of a product ledger (consume, restock, deactivate)
runs while holding that product's lock, so two requests for the same product
can never both act on the same snapshot. Locks for different products are
independent.

Locks are created on first use and dropped once nobody holds or waits on
them, so the registry does not grow with the product catalogue.
"""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, Iterable


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ProductLocks:
    def __init__(self) -> None:
        self._entries: Dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.lock.locked())

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    @asynccontextmanager
    async def hold_many(self, keys: Iterable[Hashable]) -> AsyncIterator[None]:
        """Hold several product locks at once.

        Keys are de-duplicated and acquired in sorted order so that two
        overlapping batches cannot deadlock each other.
        """
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys), key=str):
                await stack.enter_async_context(self.hold(key))
            yield
