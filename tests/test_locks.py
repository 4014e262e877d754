"""
Keyed lock tests.
"""

import asyncio

import pytest

from insight_engine.core.locks import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    order = []

    async def worker(name: str):
        async with locks.hold("user-1"):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (["a-start", "a-end", "b-start", "b-end"], ["b-start", "b-end", "a-start", "a-end"])
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_keys_run_in_parallel():
    locks = KeyedLock()
    entered = asyncio.Event()

    async def holder():
        async with locks.hold("user-1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other():
        async with locks.hold("user-2"):
            assert locks.is_held("user-1")
            entered.set()

    await asyncio.gather(holder(), other())
    assert not locks.is_held("user-1")
