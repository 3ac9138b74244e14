"""
Session directory: session key -> session record.

Enforces one active session per user. Creating a session for a user removes
every earlier record of that user and force-closes any websocket still attached
to those records; this is how a new login disconnects the previous device.

Sessions do not expire; they live until superseded.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional
from uuid import UUID

from .connections import CLOSE_SESSION_SUPERSEDED, ConnectionRegistry, OutboundChannel
from .errors import Unauthorized
from .identifiers import SessionKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    user_id: UUID
    username: str
    key: SessionKey


class SessionView:
    """Read access valid only while the session lock is held."""

    def __init__(self, sessions: Dict[SessionKey, SessionRecord]):
        self._sessions = sessions

    def get(self, key: SessionKey) -> Optional[SessionRecord]:
        return self._sessions.get(key)


class SessionDirectory:
    """
    Owns session records.

    Lock order: the session lock is always taken before the connection registry
    lock, never the other way round.
    """

    def __init__(self, connections: ConnectionRegistry):
        self._lock = asyncio.Lock()
        self._sessions: Dict[SessionKey, SessionRecord] = {}
        self._connections = connections

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[SessionView]:
        async with self._lock:
            yield SessionView(self._sessions)

    async def create_session(self, user_id: UUID, username: str) -> SessionRecord:
        record = SessionRecord(user_id=user_id, username=username, key=SessionKey.generate())

        async with self._lock, self._connections.locked() as connections:
            stale = [key for key, existing in self._sessions.items() if existing.user_id == user_id]
            for old_key in stale:
                del self._sessions[old_key]
                if connections.evict(old_key, CLOSE_SESSION_SUPERSEDED):
                    logger.info(
                        "Closed old WebSocket connection for user %s (session: %s)",
                        username,
                        old_key.redacted(),
                    )
            self._sessions[record.key] = record

        if stale:
            logger.info("Superseded %d session(s) for user %s", len(stale), username)
        return record

    async def resolve(self, key: SessionKey) -> SessionRecord:
        async with self._lock:
            record = self._sessions.get(key)
        if record is None:
            raise Unauthorized()
        return record

    async def resolve_token(self, raw: Optional[str]) -> SessionRecord:
        """Resolve an untrusted credential string taken from a request."""
        key = SessionKey.parse(raw)
        if key is None:
            raise Unauthorized()
        return await self.resolve(key)

    async def attach(self, key: SessionKey, channel: OutboundChannel) -> SessionRecord:
        """
        Register `channel` for `key`, but only if the session is still current.

        Resolution and registration share one critical section, so a login that
        supersedes this session either happens before (attach fails) or after
        (the new channel is evicted like any other).
        """
        async with self._lock:
            record = self._sessions.get(key)
            if record is None:
                raise Unauthorized()
            async with self._connections.locked() as connections:
                connections.put(key, channel)
        return record

    async def count(self) -> int:
        async with self._lock:
            return len(self._sessions)
