"""
Keyed asyncio locks.

Serializes coroutines working on the same key (an order slug, a gateway
transaction id) while letting unrelated keys proceed concurrently. Entries are
dropped once no coroutine holds or waits on them.

This only covers a single process; the conditional UPDATEs in the
repositories are what hold across workers.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """Registry of per-key ``asyncio.Lock`` objects."""

    def __init__(self, name: str = "lock"):
        self.name = name
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
