"""
Connection registry: session key -> live outbound channel.

An entry exists only while the websocket for that session is open. The registry
owns the channel handles; the consumer owns the task that drains each channel
into its socket.

Design:
- One `OutboundChannel` per connection, holding already-serialized frames.
- Enqueueing never blocks. A full channel is closed (slow-consumer eviction)
  rather than allowed to grow without limit.
- All map access goes through `locked()` so callers that span several maps
  (session creation, routing) can hold the registry lock inside their own.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Callable, Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from .identifiers import SessionKey

if TYPE_CHECKING:
    from .session_manager import SessionDirectory, SessionRecord

logger = logging.getLogger(__name__)

# Websocket close codes used when the server ends a connection.
CLOSE_NORMAL = 1000
CLOSE_INTERNAL_ERROR = 1011
CLOSE_SESSION_SUPERSEDED = 4001
CLOSE_SLOW_CONSUMER = 4008
CLOSE_UNAUTHORIZED = 4401


class OutboundChannel:
    """
    Per-connection queue of serialized outbound frames.

    `maxsize=0` means unbounded.
    """

    def __init__(self, maxsize: int = 0):
        self.maxsize = maxsize
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.close_code: int = CLOSE_NORMAL

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, payload: str) -> bool:
        """Fire-and-forget enqueue. Returns False if the payload was not queued."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full (%d frames); evicting slow consumer", self.maxsize)
            self.close(CLOSE_SLOW_CONSUMER)
            return False
        return True

    async def recv(self) -> Optional[str]:
        """Next payload, or None once the channel is closed."""
        if self._closed:
            return None
        return await self._queue.get()

    def close(self, code: int = CLOSE_NORMAL) -> None:
        """Close the channel, dropping undelivered frames and waking the reader."""
        if self._closed:
            return
        self._closed = True
        self.close_code = code
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queue.put_nowait(None)

    def pending(self) -> int:
        return 0 if self._closed else self._queue.qsize()


class RegistryView:
    """Map operations valid only while the registry lock is held."""

    def __init__(self, channels: Dict[SessionKey, OutboundChannel]):
        self._channels = channels

    def get(self, key: SessionKey) -> Optional[OutboundChannel]:
        return self._channels.get(key)

    def put(self, key: SessionKey, channel: OutboundChannel) -> Optional[OutboundChannel]:
        previous = self._channels.get(key)
        self._channels[key] = channel
        return previous

    def evict(self, key: SessionKey, code: int) -> bool:
        channel = self._channels.pop(key, None)
        if channel is None:
            return False
        channel.close(code)
        return True

    def all_except(self, key: SessionKey) -> Iterator[Tuple[SessionKey, OutboundChannel]]:
        for other_key, channel in self._channels.items():
            if other_key != key:
                yield other_key, channel

    def channels_for_user(
        self,
        lookup: Callable[[SessionKey], Optional["SessionRecord"]],
        user_id: UUID,
    ) -> Iterator[OutboundChannel]:
        # O(live connections). A user_id -> key index would remove the scan.
        for key, channel in self._channels.items():
            record = lookup(key)
            if record is not None and record.user_id == user_id:
                yield channel

    def __len__(self) -> int:
        return len(self._channels)


class ConnectionRegistry:
    """Owns the session key -> outbound channel map."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._channels: Dict[SessionKey, OutboundChannel] = {}

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[RegistryView]:
        async with self._lock:
            yield RegistryView(self._channels)

    async def register(self, key: SessionKey, channel: OutboundChannel) -> None:
        """Insert or overwrite. An overwritten channel is no longer reachable here."""
        async with self.locked() as view:
            previous = view.put(key, channel)
        if previous is not None and previous is not channel:
            logger.info("Connection for session %s replaced by a newer one", key.redacted())

    async def unregister(self, key: SessionKey, channel: Optional[OutboundChannel] = None) -> bool:
        """
        Remove the entry for `key` if present.

        With `channel` given, only remove it if it is still the registered one, so a
        closing connection cannot drop the connection that replaced it.
        """
        async with self._lock:
            current = self._channels.get(key)
            if current is None or (channel is not None and current is not channel):
                return False
            del self._channels[key]
            return True

    async def all_except(self, key: SessionKey) -> List[Tuple[SessionKey, OutboundChannel]]:
        async with self.locked() as view:
            return list(view.all_except(key))

    async def channels_for_user(self, sessions: "SessionDirectory", user_id: UUID) -> List[OutboundChannel]:
        # Session map before connection map, same as every other caller.
        async with sessions.locked() as session_view, self.locked() as view:
            return list(view.channels_for_user(session_view.get, user_id))

    async def get(self, key: SessionKey) -> Optional[OutboundChannel]:
        async with self._lock:
            return self._channels.get(key)

    async def count(self) -> int:
        async with self._lock:
            return len(self._channels)
