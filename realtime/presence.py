"""
Presence broadcast (who came online / went offline).

WHY:
- Every connected client keeps a contact list with online markers, so status
  changes go to every live connection, not just to contacts.
- The connection that caused the change is skipped; it already knows.

Called once after a successful upgrade (online) and once when the connection
ends for any reason (offline), including abrupt transport failure.
"""

from __future__ import annotations

import logging

from .connections import ConnectionRegistry
from .serializers import PresenceStatus, StatusMessageOut
from .session_manager import SessionRecord

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    def __init__(self, connections: ConnectionRegistry):
        self._connections = connections

    async def announce(self, session: SessionRecord, status: PresenceStatus) -> int:
        """Enqueue a statusMessage to every live connection except `session`'s own."""
        event = StatusMessageOut(user_id=session.user_id, username=session.username, status=status)
        try:
            payload = event.to_json()
        except Exception:
            logger.exception("Failed to serialize status message for %s", session.username)
            return 0

        delivered = 0
        async with self._connections.locked() as connections:
            for _, channel in connections.all_except(session.key):
                if channel.send(payload):
                    delivered += 1

        logger.debug("Presence %s for %s sent to %d connection(s)", status.value, session.username, delivered)
        return delivered
