from django.urls import re_path

from .consumers import ChatConsumer
from .middleware import SessionCredentialMiddleware


websocket_urlpatterns = [
    # Credential in the path, as the browser client connects.
    re_path(r"^ws/chat/(?P<session_key>[^/]+)/$", SessionCredentialMiddleware(ChatConsumer.as_asgi())),
    # Credential in the X-Session-Key header or ?session_key= query parameter.
    re_path(r"^ws/chat/$", SessionCredentialMiddleware(ChatConsumer.as_asgi())),
]
