"""Per-key asyncio locks.

Stock, carts, seller statistics and order status changes are all
read-modify-write sequences that must not interleave for the same
key. One ``asyncio.Lock`` per key serializes them within a process.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

logger = structlog.get_logger()


class KeyedLock:
    """Lazily created lock per key, e.g. ``product:<id>``.

    Locks are never evicted; the key space (products, customers,
    sellers, orders) is bounded by the data the process holds anyway.
    """

    def __init__(self, namespace: str) -> None:
        """Initialize the lock table.

        Args:
            namespace: Prefix used in log lines.
        """
        self._namespace = namespace
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        """Return the lock guarding ``key``, creating it on first use."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self.lock_for(key)
        if lock.locked():
            logger.debug("Waiting for lock", lock=f"{self._namespace}:{key}")
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
