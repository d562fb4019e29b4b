"""Tests for per-key locks."""

import asyncio

import pytest

from marketcart.infrastructure.locks import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized() -> None:
    locks = KeyedLock("test")
    trace: list[str] = []

    async def critical(name: str) -> None:
        async with locks.hold("product:milk"):
            trace.append(f"{name}:in")
            await asyncio.sleep(0)
            trace.append(f"{name}:out")

    await asyncio.gather(critical("a"), critical("b"))

    assert trace == ["a:in", "a:out", "b:in", "b:out"]
    assert len(locks) == 1


@pytest.mark.asyncio
async def test_different_keys_do_not_block() -> None:
    locks = KeyedLock("test")

    async with locks.hold("product:milk"):
        assert not locks.lock_for("product:bread").locked()

    assert locks.lock_for("product:milk") is locks.lock_for("product:milk")
