"""
URL configuration for the chat relay.

WebSocket routes live in `realtime.routing`; these are the HTTP endpoints.
"""
from django.urls import path

from realtime.views import contacts_view, login_view, register_view
from .health import health

urlpatterns = [
    path("health/", health),
    path("api/register/", register_view),
    path("api/login/", login_view),
    path("api/contacts/", contacts_view),
]
