"""
ASGI config for the chat relay.

It exposes the ASGI callable as a module-level variable named ``application``.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "chat_relay.settings")

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from django.conf import settings
from django.core.asgi import get_asgi_application

# Standard Django ASGI application for HTTP. Must be built before importing
# anything that touches models or the app registry.
django_asgi_app = get_asgi_application()

from chat_relay.routing import websocket_urlpatterns  # noqa: E402

# Channels router for WebSockets.
#
# The session credential is resolved per route (see realtime.middleware), so
# there is no AuthMiddlewareStack: Django users and cookies play no part here.
#
# AllowedHostsOriginValidator (when DEBUG is False) rejects upgrades whose
# Origin host is not in ALLOWED_HOSTS.
websocket_app = URLRouter(websocket_urlpatterns)
if not settings.DEBUG:
    websocket_app = AllowedHostsOriginValidator(websocket_app)

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": websocket_app,
    }
)
