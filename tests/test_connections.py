# tests/test_connections.py
from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from realtime.connections import (
    CLOSE_NORMAL,
    CLOSE_SLOW_CONSUMER,
    ConnectionRegistry,
    OutboundChannel,
)
from realtime.identifiers import SessionKey


# -----------------------------
# OutboundChannel
# -----------------------------

@pytest.mark.asyncio
async def test_channel_delivers_in_order():
    channel = OutboundChannel()
    for i in range(3):
        assert channel.send(f"frame-{i}")

    assert [await channel.recv() for _ in range(3)] == ["frame-0", "frame-1", "frame-2"]


@pytest.mark.asyncio
async def test_full_channel_evicts_slow_consumer():
    channel = OutboundChannel(maxsize=2)
    assert channel.send("a")
    assert channel.send("b")

    assert channel.send("c") is False
    assert channel.closed
    assert channel.close_code == CLOSE_SLOW_CONSUMER
    # Undelivered frames are discarded; the reader sees the close right away.
    assert await channel.recv() is None
    assert channel.send("d") is False


@pytest.mark.asyncio
async def test_close_wakes_blocked_reader():
    channel = OutboundChannel()
    reader = asyncio.create_task(channel.recv())
    await asyncio.sleep(0)

    channel.close()

    assert await asyncio.wait_for(reader, timeout=1) is None
    assert channel.close_code == CLOSE_NORMAL


def test_close_is_idempotent_and_keeps_first_code():
    channel = OutboundChannel()
    channel.close(CLOSE_SLOW_CONSUMER)
    channel.close(CLOSE_NORMAL)

    assert channel.close_code == CLOSE_SLOW_CONSUMER
    assert channel.pending() == 0


# -----------------------------
# ConnectionRegistry
# -----------------------------

@pytest.mark.asyncio
async def test_register_overwrites_existing_entry():
    registry = ConnectionRegistry()
    key = SessionKey.generate()
    first, second = OutboundChannel(), OutboundChannel()

    await registry.register(key, first)
    await registry.register(key, second)

    assert await registry.get(key) is second
    assert await registry.count() == 1


@pytest.mark.asyncio
async def test_unregister_is_idempotent():
    registry = ConnectionRegistry()
    key = SessionKey.generate()
    await registry.register(key, OutboundChannel())

    assert await registry.unregister(key) is True
    assert await registry.unregister(key) is False
    assert await registry.count() == 0


@pytest.mark.asyncio
async def test_unregister_ignores_replaced_channel():
    registry = ConnectionRegistry()
    key = SessionKey.generate()
    old, new = OutboundChannel(), OutboundChannel()
    await registry.register(key, old)
    await registry.register(key, new)

    assert await registry.unregister(key, old) is False
    assert await registry.get(key) is new
    assert await registry.unregister(key, new) is True


@pytest.mark.asyncio
async def test_all_except_skips_given_key():
    registry = ConnectionRegistry()
    keys = [SessionKey.generate() for _ in range(3)]
    for key in keys:
        await registry.register(key, OutboundChannel())

    others = {key for key, _ in await registry.all_except(keys[0])}

    assert others == set(keys[1:])


@pytest.mark.asyncio
async def test_all_except_on_empty_registry():
    registry = ConnectionRegistry()
    assert await registry.all_except(SessionKey.generate()) == []


@pytest.mark.asyncio
async def test_channels_for_user_follows_session_directory(hub):
    alice_id = uuid4()
    alice = await hub.sessions.create_session(alice_id, "alice")
    bob = await hub.sessions.create_session(uuid4(), "bob")
    alice_channel, bob_channel = OutboundChannel(), OutboundChannel()
    await hub.sessions.attach(alice.key, alice_channel)
    await hub.sessions.attach(bob.key, bob_channel)

    assert await hub.connections.channels_for_user(hub.sessions, alice_id) == [alice_channel]
    assert await hub.connections.channels_for_user(hub.sessions, uuid4()) == []
