"""Per-key asyncio locks for single-writer-per-record mutations."""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager

from brainbase.core.logging import LoggerMixin


class KeyedLock(LoggerMixin):
    """
    Hand out one ``asyncio.Lock`` per key.

    Locks for several keys are always acquired in sorted order so two
    writers touching the same pair of records cannot deadlock. Entries
    are dropped once no task holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, *keys: str) -> AsyncIterator[None]:
        """Hold the locks for every key in ``keys`` for the duration of the block."""
        ordered = sorted({k for k in keys if k})
        async with AsyncExitStack() as stack:
            for key in ordered:
                await stack.enter_async_context(self._hold(key))
            yield

    @asynccontextmanager
    async def _hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            self.logger.debug("Waiting for lock", extra={"key": key})
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def held_keys(self) -> Iterable[str]:
        return [key for key, lock in self._locks.items() if lock.locked()]


# Process-wide lock table for record mutations
record_locks = KeyedLock()
