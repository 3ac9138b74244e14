"""
Session credential middleware for WebSocket upgrades.

Resolves the credential presented with the upgrade request before the consumer
runs and stores the session record in `scope["relay_session"]`. The consumer
refuses the upgrade when it is missing.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import parse_qs

from channels.middleware import BaseMiddleware

from .config import config
from .errors import Unauthorized
from .hub import get_hub

logger = logging.getLogger(__name__)


def _get_header(scope: dict, name: str) -> Optional[str]:
    """Get first header value from ASGI scope (header names are lowercased)."""
    want = name.lower().encode("ascii")
    for key, value in scope.get("headers") or []:
        if key == want:
            return value.decode("utf-8", errors="replace").strip()
    return None


def get_credential_from_scope(scope: dict) -> Optional[str]:
    """
    Credential lookup order: URL path segment, session header, `session_key` query parameter.
    """
    kwargs = (scope.get("url_route") or {}).get("kwargs") or {}
    if kwargs.get("session_key"):
        return kwargs["session_key"]

    provided = _get_header(scope, config.SESSION_HEADER)
    if provided:
        return provided

    query_string = (scope.get("query_string") or b"").decode("utf-8", errors="replace")
    if query_string:
        values = parse_qs(query_string).get("session_key")
        if values:
            return values[0]
    return None


class SessionCredentialMiddleware(BaseMiddleware):
    """
    Channels middleware. Must wrap the URLRouter's routes (not the router itself)
    when the credential travels in the path, since `url_route` is set by the router.
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        scope["relay_session"] = None

        raw = get_credential_from_scope(scope)
        if raw:
            try:
                scope["relay_session"] = await get_hub().sessions.resolve_token(raw)
            except Unauthorized:
                logger.info("WebSocket upgrade with unknown session credential (path=%s)", scope.get("path"))

        return await super().__call__(scope, receive, send)
