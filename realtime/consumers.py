"""
WebSocket consumer for the chat relay.

Key behavior:
- URL: /ws/chat/<session_key>/ (or /ws/chat/ with X-Session-Key header / ?session_key=)
- The credential is resolved before the upgrade; unknown credentials are refused.
- Each connection runs two tasks: the Channels receive loop (inbound frames ->
  router) and an outbound task draining this connection's channel to the socket.
  The inbound side never writes to the socket.
- The outbound task ending (channel closed by eviction or supersession, failed
  write) closes the socket, which ends the inbound side too.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from channels.generic.websocket import AsyncWebsocketConsumer

from .connections import CLOSE_INTERNAL_ERROR, CLOSE_UNAUTHORIZED, OutboundChannel
from .errors import Unauthorized
from .hub import RelayHub, get_hub
from .serializers import PresenceStatus
from .session_manager import SessionRecord

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncWebsocketConsumer):
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.hub: Optional[RelayHub] = None
        self.session: Optional[SessionRecord] = None
        self.outbound: Optional[OutboundChannel] = None
        self._outbound_task: Optional[asyncio.Task] = None
        self._registered: bool = False

    async def connect(self) -> None:
        session: Optional[SessionRecord] = self.scope.get("relay_session")
        if session is None:
            # Reject before accept(); the upgrade does not proceed.
            await self.close(code=CLOSE_UNAUTHORIZED)
            return

        self.hub = get_hub()
        self.outbound = self.hub.open_channel()

        await self.accept()

        try:
            self.session = await self.hub.sessions.attach(session.key, self.outbound)
        except Unauthorized:
            logger.info("Session %s superseded before registration; closing", session.key.redacted())
            await self.close(code=CLOSE_UNAUTHORIZED)
            return
        self._registered = True

        self._outbound_task = asyncio.create_task(self._outbound_loop())
        logger.info("User %r connected (session: %s)", self.session.username, self.session.key.redacted())

        await self.hub.presence.announce(self.session, PresenceStatus.ONLINE)

    async def disconnect(self, close_code: int) -> None:
        if self._outbound_task:
            self._outbound_task.cancel()
            try:
                await self._outbound_task
            except asyncio.CancelledError:
                pass
            self._outbound_task = None

        if not self._registered or self.hub is None or self.session is None:
            return
        self._registered = False

        await self.hub.connections.unregister(self.session.key, self.outbound)
        if self.outbound is not None:
            self.outbound.close()

        logger.info(
            "User %r disconnected (session: %s, code: %s)",
            self.session.username,
            self.session.key.redacted(),
            close_code,
        )
        await self.hub.presence.announce(self.session, PresenceStatus.OFFLINE)

    async def receive(self, text_data: Optional[str] = None, bytes_data: Optional[bytes] = None) -> None:
        if self.session is None or self.hub is None:
            return
        if text_data is None:
            logger.debug("Ignoring binary frame from %r", self.session.username)
            return
        await self.hub.router.dispatch(text_data, self.session)

    async def _outbound_loop(self) -> None:
        """Drain this connection's channel into the socket until the channel closes."""
        assert self.outbound is not None
        try:
            while True:
                payload = await self.outbound.recv()
                if payload is None:
                    break
                await self.send(text_data=payload)
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("Outbound write failed for %r", self.session.username if self.session else None)
            self.outbound.close(CLOSE_INTERNAL_ERROR)

        await self.close(code=self.outbound.close_code)
