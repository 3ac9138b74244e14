"""
JSON views for registration, login and the contact list.

- POST /api/register/     {username, password} -> session credential
- POST /api/login/        {username, password} -> session credential
- POST /api/contacts/     X-Session-Key + {contactUsername} -> mutual contact
- GET  /api/contacts/     X-Session-Key -> [{id, username}]

The credential travels in a header, never a cookie, so these views are CSRF exempt.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Type

from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from pydantic import BaseModel, ValidationError

from .config import config
from .errors import InvalidInput, RelayError
from .hub import get_hub
from .identity import AuthOutcome
from .serializers import AddContactRequest, AuthRequest, AuthResponse
from .session_manager import SessionRecord

logger = logging.getLogger(__name__)


def _error_response(error: RelayError) -> JsonResponse:
    return JsonResponse(error.as_payload(), status=error.status)


def _parse_body(request, model: Type[BaseModel]) -> BaseModel:
    try:
        body = json.loads(request.body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidInput("Invalid JSON")
    try:
        return model.model_validate(body)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "body" for err in e.errors())
        raise InvalidInput(f"Invalid request body: {fields}")


async def _current_session(request) -> SessionRecord:
    raw: Optional[str] = request.headers.get(config.SESSION_HEADER)
    return await get_hub().sessions.resolve_token(raw)


def _auth_response(outcome: AuthOutcome) -> JsonResponse:
    body = AuthResponse(
        session_credential=outcome.session.key,
        user_id=outcome.user.id,
        username=outcome.user.username,
    )
    return JsonResponse(body.model_dump(mode="json", by_alias=True))


@csrf_exempt
@require_http_methods(["POST"])
async def register_view(request):
    """POST /api/register/ - Create a user and start its session."""
    try:
        payload = _parse_body(request, AuthRequest)
        outcome = await get_hub().identity.register(payload.username, payload.password)
    except RelayError as e:
        logger.info("Registration failed: %s", e.message)
        return _error_response(e)
    return _auth_response(outcome)


@csrf_exempt
@require_http_methods(["POST"])
async def login_view(request):
    """POST /api/login/ - Start a new session, closing any previous one for the user."""
    try:
        payload = _parse_body(request, AuthRequest)
        outcome = await get_hub().identity.authenticate(payload.username, payload.password)
    except RelayError as e:
        logger.info("Login failed: %s", e.message)
        return _error_response(e)
    return _auth_response(outcome)


@csrf_exempt
@require_http_methods(["GET", "POST"])
async def contacts_view(request):
    """GET lists the caller's contacts; POST adds a mutual contact."""
    hub = get_hub()
    try:
        session = await _current_session(request)
        if request.method == "POST":
            payload = _parse_body(request, AddContactRequest)
            await hub.identity.add_contact(session.username, payload.contact_username)
            return HttpResponse(status=200)

        contacts = await hub.identity.list_contacts(session.username)
    except RelayError as e:
        return _error_response(e)

    logger.debug("Retrieved %d contact(s) for %s", len(contacts), session.username)
    return JsonResponse([c.as_dict() for c in contacts], safe=False)
