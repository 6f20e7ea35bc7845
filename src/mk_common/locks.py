"""Per-key asyncio locks.

Serializes in-process work on one order (or wallet) while leaving other keys
fully parallel. The database compare-and-set remains the cross-process
guard; these locks only keep a single process from racing itself.
"""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._holders: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        self._holders[key] += 1
        lock = self._locks[key]
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                # no waiters left
                del self._holders[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


# Shared by escrow, settlement and order cancellation in this process
order_locks = KeyedLocks()
