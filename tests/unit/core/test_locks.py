"""
Unit tests for KeyedLock.
"""

import asyncio

import pytest

from brainbase.core.locks import KeyedLock


class TestKeyedLock:
    """Tests for per-key locking."""

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        order: list[str] = []

        async def writer(name: str) -> None:
            async with locks.acquire("rec-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(writer("a"), writer("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        locks = KeyedLock()
        started = asyncio.Event()

        async def first() -> None:
            async with locks.acquire("rec-1"):
                started.set()
                await asyncio.sleep(0.01)

        async def second() -> None:
            await started.wait()
            async with locks.acquire("rec-2"):
                assert locks.locked("rec-1")

        await asyncio.gather(first(), second())

    @pytest.mark.asyncio
    async def test_multi_key_acquire_and_release(self):
        locks = KeyedLock()

        async with locks.acquire("b", "a", "a", ""):
            assert sorted(locks.held_keys()) == ["a", "b"]

        assert list(locks.held_keys()) == []
        assert not locks.locked("a")

    @pytest.mark.asyncio
    async def test_opposite_order_does_not_deadlock(self):
        locks = KeyedLock()

        async def pair(x: str, y: str) -> None:
            async with locks.acquire(x, y):
                await asyncio.sleep(0.005)

        await asyncio.wait_for(asyncio.gather(pair("a", "b"), pair("b", "a")), timeout=1)
