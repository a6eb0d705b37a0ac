# =============================
# Sync Core Locking
# =============================

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Tuple


class KeyedLock:
    """
    One asyncio.Lock per key (e.g. a Shopify order id), dropped again
    once nobody holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)


# Redeliveries of the same order / SKU inside this process run one at a time
order_locks = KeyedLock()
product_locks = KeyedLock()
