"""
Process-wide wiring of the relay core.

One hub per process. Consumers and views reach every directory through
`get_hub()`; tests call `reset_hub()` to start from an empty state.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import RelaySettings, config
from .connections import ConnectionRegistry, OutboundChannel
from .identity import IdentityStore
from .presence import PresenceBroadcaster
from .router import MessageRouter
from .session_manager import SessionDirectory

logger = logging.getLogger(__name__)


class RelayHub:
    def __init__(self, settings: RelaySettings):
        self.settings = settings
        self.connections = ConnectionRegistry()
        self.sessions = SessionDirectory(self.connections)
        self.identity = IdentityStore(self.sessions)
        self.presence = PresenceBroadcaster(self.connections)
        self.router = MessageRouter(
            self.sessions,
            self.connections,
            max_frame_bytes=settings.MAX_FRAME_BYTES,
        )

    def open_channel(self) -> OutboundChannel:
        return OutboundChannel(maxsize=self.settings.OUTBOUND_QUEUE_SIZE)


_hub: Optional[RelayHub] = None


def get_hub() -> RelayHub:
    global _hub
    if _hub is None:
        _hub = RelayHub(config)
        logger.info(
            "Relay hub ready (outbound queue size=%s, max frame bytes=%s)",
            config.OUTBOUND_QUEUE_SIZE or "unbounded",
            config.MAX_FRAME_BYTES or "unlimited",
        )
    return _hub


def reset_hub(settings: Optional[RelaySettings] = None) -> RelayHub:
    """Replace the process-wide hub with a fresh, empty one."""
    global _hub
    _hub = RelayHub(settings or config)
    return _hub
