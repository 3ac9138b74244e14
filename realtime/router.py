"""
Message router: decides which live connections receive each inbound event.

| kind            | recipients                                               |
|-----------------|----------------------------------------------------------|
| chatMessage     | connections of the target user + the sender's own (echo) |
| typingIndicator | connections of the target user                           |
| readReceipt     | connections of the original message sender               |

Malformed frames are dropped with a diagnostic and never end the connection.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional
from uuid import UUID

from pydantic import BaseModel, ValidationError

from .connections import ConnectionRegistry, OutboundChannel
from .identifiers import new_message_id
from .serializers import (
    ChatMessageIn,
    ChatMessageOut,
    ReadReceiptIn,
    ReadReceiptOut,
    TypingIndicatorIn,
    TypingIndicatorOut,
    inbound_frame_adapter,
)
from .session_manager import SessionDirectory, SessionRecord

logger = logging.getLogger(__name__)

DropHook = Callable[[str, SessionRecord], None]


class MessageRouter:
    def __init__(
        self,
        sessions: SessionDirectory,
        connections: ConnectionRegistry,
        *,
        max_frame_bytes: int = 0,
        on_drop: Optional[DropHook] = None,
    ):
        self._sessions = sessions
        self._connections = connections
        self.max_frame_bytes = max_frame_bytes
        self.on_drop = on_drop
        self.dropped = 0

    async def dispatch(self, raw: str, sender: SessionRecord) -> int:
        """Validate and route one inbound text frame. Returns the number of channels enqueued."""
        if self.max_frame_bytes and len(raw.encode("utf-8")) > self.max_frame_bytes:
            self._drop(f"frame exceeds {self.max_frame_bytes} bytes", sender)
            return 0

        try:
            frame = inbound_frame_adapter.validate_json(raw)
        except ValidationError as e:
            self._drop(f"invalid frame: {e.error_count()} error(s), first: {e.errors()[0]['msg']}", sender)
            return 0

        if isinstance(frame, ChatMessageIn):
            event: BaseModel = ChatMessageOut(
                from_user_id=sender.user_id,
                from_username=sender.username,
                to_user_id=frame.to_user_id,
                message_id=new_message_id(),
                timestamp=datetime.now(timezone.utc).isoformat(),
                message=frame.message,
            )
            recipients = (frame.to_user_id, sender.user_id)
        elif isinstance(frame, TypingIndicatorIn):
            event = TypingIndicatorOut(from_user_id=sender.user_id, is_typing=frame.is_typing)
            recipients = (frame.to_user_id,)
        elif isinstance(frame, ReadReceiptIn):
            event = ReadReceiptOut(from_user_id=sender.user_id, message_id=frame.message_id)
            recipients = (frame.to_user_id,)
        else:  # pragma: no cover - the adapter only yields the kinds above
            self._drop(f"unhandled frame type {type(frame).__name__}", sender)
            return 0

        try:
            payload = event.model_dump_json(by_alias=True)
        except Exception:
            logger.exception("Failed to serialize %s from %s", type(event).__name__, sender.username)
            self._drop(f"failed to serialize {type(event).__name__}", sender)
            return 0

        return await self._deliver(payload, recipients, sender)

    async def _deliver(self, payload: str, user_ids: Iterable[UUID], sender: SessionRecord) -> int:
        # Session map, then connection map, for the whole routing decision and enqueue.
        async with self._sessions.locked() as sessions, self._connections.locked() as connections:
            if sessions.get(sender.key) is None:
                # Superseded while this frame was in flight.
                self._drop("sender session is no longer current", sender)
                return 0

            targets: Dict[int, OutboundChannel] = {}
            for user_id in user_ids:
                for channel in connections.channels_for_user(sessions.get, user_id):
                    targets.setdefault(id(channel), channel)

            delivered = 0
            for channel in targets.values():
                if channel.send(payload):
                    delivered += 1
        return delivered

    def _drop(self, reason: str, sender: SessionRecord) -> None:
        self.dropped += 1
        logger.warning("Dropped frame from %s (session: %s): %s", sender.username, sender.key.redacted(), reason)
        if self.on_drop is not None:
            try:
                self.on_drop(reason, sender)
            except Exception:
                logger.exception("on_drop hook failed")
