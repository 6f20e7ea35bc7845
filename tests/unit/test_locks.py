"""KeyedLocks: per-key serialization."""

import asyncio

from src.mk_common.locks import KeyedLocks


class TestKeyedLocks:
    async def test_same_key_is_serialized(self) -> None:
        locks = KeyedLocks()
        events: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("order-1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0)
                await asyncio.sleep(0)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert events == ["a-in", "a-out", "b-in", "b-out"]

    async def test_different_keys_run_in_parallel(self) -> None:
        locks = KeyedLocks()
        events: list[str] = []

        async def worker(key: str) -> None:
            async with locks.hold(key):
                events.append(f"{key}-in")
                await asyncio.sleep(0)
                events.append(f"{key}-out")

        await asyncio.gather(worker("x"), worker("y"))
        assert events[:2] == ["x-in", "y-in"]

    async def test_released_keys_are_dropped(self) -> None:
        locks = KeyedLocks()
        async with locks.hold("k"):
            assert len(locks) == 1
        assert len(locks) == 0

    async def test_released_on_error(self) -> None:
        locks = KeyedLocks()
        try:
            async with locks.hold("k"):
                raise ValueError("boom")
        except ValueError:
            pass
        async with locks.hold("k"):
            pass
        assert len(locks) == 0
