# tests/test_consumers.py
from __future__ import annotations

import pytest
from channels.testing import WebsocketCommunicator

from chat_relay.asgi import application
from realtime.config import RelaySettings
from realtime.connections import (
    CLOSE_INTERNAL_ERROR,
    CLOSE_SESSION_SUPERSEDED,
    CLOSE_SLOW_CONSUMER,
    CLOSE_UNAUTHORIZED,
)
from realtime.consumers import ChatConsumer
from realtime.errors import Unauthorized
from realtime.hub import reset_hub

ORIGIN = (b"origin", b"http://localhost")


def _communicator(path, headers=()):
    return WebsocketCommunicator(application, path, headers=[ORIGIN, *headers])


async def _connect(path, headers=()):
    communicator = _communicator(path, headers)
    connected, _ = await communicator.connect()
    assert connected
    return communicator


# -----------------------------
# Upgrade / credential lookup
# -----------------------------

@pytest.mark.asyncio
async def test_unknown_credential_refused(hub):
    communicator = _communicator("/ws/chat/" + "A" * 43 + "/")

    connected, code = await communicator.connect()

    assert connected is False
    assert code == CLOSE_UNAUTHORIZED
    assert await hub.connections.count() == 0


@pytest.mark.asyncio
async def test_missing_credential_refused():
    communicator = _communicator("/ws/chat/")

    connected, _ = await communicator.connect()

    assert connected is False


@pytest.mark.asyncio
async def test_credential_in_header(hub):
    alice = await hub.identity.register("alice", "pw")

    communicator = await _connect("/ws/chat/", [(b"x-session-key", alice.session.key.encode())])

    assert await hub.connections.get(alice.session.key) is not None
    await communicator.disconnect()
    assert await hub.connections.count() == 0


@pytest.mark.asyncio
async def test_credential_in_query_string(hub):
    alice = await hub.identity.register("alice", "pw")

    communicator = await _connect(f"/ws/chat/?session_key={alice.session.key}")

    assert await hub.connections.count() == 1
    await communicator.disconnect()


# -----------------------------
# Presence and chat end to end
# -----------------------------

@pytest.mark.asyncio
async def test_alice_and_bob_chat(hub):
    """
    Alice is online when Bob connects: she sees Bob come online, receives his
    message (which Bob also gets back as an echo), then sees him go offline.
    """
    alice = await hub.identity.register("alice", "pw")
    bob = await hub.identity.register("bob", "pw")

    alice_ws = await _connect(f"/ws/chat/{alice.session.key}/")
    bob_ws = await _connect(f"/ws/chat/{bob.session.key}/")

    status = await alice_ws.receive_json_from(timeout=1)
    assert status == {
        "type": "statusMessage",
        "userId": str(bob.user.id),
        "username": "bob",
        "status": "online",
    }

    await bob_ws.send_json_to({"type": "chatMessage", "toUserId": str(alice.user.id), "message": "hi"})

    received = await alice_ws.receive_json_from(timeout=1)
    echo = await bob_ws.receive_json_from(timeout=1)
    assert received == echo
    assert received["fromUsername"] == "bob"
    assert received["message"] == "hi"

    await bob_ws.disconnect()

    offline = await alice_ws.receive_json_from(timeout=1)
    assert offline["type"] == "statusMessage"
    assert offline["status"] == "offline"
    assert offline["userId"] == str(bob.user.id)

    await alice_ws.disconnect()


@pytest.mark.asyncio
async def test_typing_indicator_not_echoed(hub):
    alice = await hub.identity.register("alice", "pw")
    bob = await hub.identity.register("bob", "pw")
    bob_ws = await _connect(f"/ws/chat/{bob.session.key}/")
    alice_ws = await _connect(f"/ws/chat/{alice.session.key}/")
    await bob_ws.receive_json_from(timeout=1)  # alice online

    await alice_ws.send_json_to({"type": "typingIndicator", "toUserId": str(bob.user.id), "isTyping": True})

    assert await bob_ws.receive_json_from(timeout=1) == {
        "type": "typingIndicator",
        "fromUserId": str(alice.user.id),
        "isTyping": True,
    }
    assert await alice_ws.receive_nothing(timeout=0.1)

    await alice_ws.disconnect()
    await bob_ws.disconnect()


@pytest.mark.asyncio
async def test_malformed_frames_keep_connection_open(hub, drops):
    alice = await hub.identity.register("alice", "pw")
    alice_ws = await _connect(f"/ws/chat/{alice.session.key}/")

    await alice_ws.send_to(text_data="not json")
    await alice_ws.send_to(text_data='{"type":"chatMessage","toUserId":"nope","message":"x"}')
    await alice_ws.send_to(bytes_data=b"\x00\x01")
    await alice_ws.send_json_to({"type": "chatMessage", "toUserId": str(alice.user.id), "message": "still here"})

    frame = await alice_ws.receive_json_from(timeout=1)
    assert frame["message"] == "still here"
    assert len(drops) == 2

    await alice_ws.disconnect()


# -----------------------------
# Supersession
# -----------------------------

@pytest.mark.asyncio
async def test_new_login_closes_previous_socket(hub):
    await hub.identity.register("alice", "pw")
    first = await hub.identity.authenticate("alice", "pw")
    first_ws = await _connect(f"/ws/chat/{first.session.key}/")

    second = await hub.identity.authenticate("alice", "pw")

    closed = await first_ws.receive_output(timeout=1)
    assert closed == {"type": "websocket.close", "code": CLOSE_SESSION_SUPERSEDED}
    with pytest.raises(Unauthorized):
        await hub.sessions.resolve(first.session.key)

    # The old credential no longer opens a socket; the new one does.
    stale_ws = _communicator(f"/ws/chat/{first.session.key}/")
    connected, _ = await stale_ws.connect()
    assert connected is False

    second_ws = await _connect(f"/ws/chat/{second.session.key}/")
    assert await hub.connections.count() == 1

    await first_ws.disconnect()
    await second_ws.disconnect()


# -----------------------------
# Termination on error
# -----------------------------

@pytest.mark.asyncio
async def test_failed_socket_write_closes_with_internal_error(hub, monkeypatch):
    """
    A write failure on one socket closes only that socket (1011); its disconnect
    still unregisters it and tells the others it went offline.
    """
    send = ChatConsumer.send

    async def _send(self, text_data=None, bytes_data=None, close=False):
        if self.session is not None and self.session.username == "alice":
            raise ConnectionResetError("peer went away")
        await send(self, text_data=text_data, bytes_data=bytes_data, close=close)

    monkeypatch.setattr(ChatConsumer, "send", _send)

    alice = await hub.identity.register("alice", "pw")
    bob = await hub.identity.register("bob", "pw")
    alice_ws = await _connect(f"/ws/chat/{alice.session.key}/")
    bob_ws = await _connect(f"/ws/chat/{bob.session.key}/")

    # Bob's online status is the first write to alice's socket.
    assert await alice_ws.receive_output(timeout=1) == {"type": "websocket.close", "code": CLOSE_INTERNAL_ERROR}

    await alice_ws.disconnect()

    assert await hub.connections.count() == 1
    offline = await bob_ws.receive_json_from(timeout=1)
    assert offline["userId"] == str(alice.user.id)
    assert offline["status"] == "offline"

    await bob_ws.disconnect()
    assert await hub.connections.count() == 0


@pytest.mark.asyncio
async def test_slow_consumer_evicted():
    hub = reset_hub(RelaySettings(OUTBOUND_QUEUE_SIZE=2))
    alice = await hub.identity.register("alice", "pw")
    bob = await hub.identity.register("bob", "pw")
    bob_ws = await _connect(f"/ws/chat/{bob.session.key}/")
    alice_ws = await _connect(f"/ws/chat/{alice.session.key}/")
    assert (await bob_ws.receive_json_from(timeout=1))["status"] == "online"

    # Three frames land before alice's socket drains any of them.
    channel = await hub.connections.get(alice.session.key)
    assert channel.send("one")
    assert channel.send("two")
    assert channel.send("three") is False

    assert await alice_ws.receive_output(timeout=1) == {"type": "websocket.close", "code": CLOSE_SLOW_CONSUMER}

    await alice_ws.disconnect()

    assert await hub.connections.count() == 1
    offline = await bob_ws.receive_json_from(timeout=1)
    assert offline["userId"] == str(alice.user.id)
    assert offline["status"] == "offline"

    await bob_ws.disconnect()
