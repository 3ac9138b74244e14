from __future__ import annotations

import os
import time

from django.http import JsonResponse

from realtime.hub import get_hub


async def health(request):
    """
    Liveness endpoint.

    Reports directory sizes only; never touches the password hasher or any socket.
    """
    hub = get_hub()
    return JsonResponse(
        {
            "status": "ok",
            "ts": int(time.time()),
            "instance_id": os.environ.get("INSTANCE_ID", "unknown-instance"),
            "users": await hub.identity.count(),
            "sessions": await hub.sessions.count(),
            "connections": await hub.connections.count(),
        }
    )
