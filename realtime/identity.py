"""
Identity store: registered users keyed by username, each with a mutual contact book.

Password hashing is delegated to Django's configured hashers and always runs
outside the user-map lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from asgiref.sync import sync_to_async
from django.contrib.auth.hashers import check_password, make_password

from .errors import AlreadyExists, InvalidCredentials, InvalidInput, NotFound
from .identifiers import new_user_id
from .session_manager import SessionDirectory, SessionRecord

logger = logging.getLogger(__name__)

_hash_password = sync_to_async(make_password)
_verify_password = sync_to_async(check_password)


@dataclass(frozen=True)
class UserSummary:
    id: UUID
    username: str

    def as_dict(self) -> dict:
        return {"id": str(self.id), "username": self.username}


@dataclass(frozen=True)
class AuthOutcome:
    user: UserSummary
    session: SessionRecord


class ContactBook:
    """contact user id -> contact username, with its own lock."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._contacts: Dict[UUID, str] = {}

    async def add(self, contact: UserSummary) -> None:
        async with self._lock:
            self._contacts[contact.id] = contact.username

    async def snapshot(self) -> List[UserSummary]:
        async with self._lock:
            return [UserSummary(id=cid, username=name) for cid, name in self._contacts.items()]


@dataclass
class User:
    id: UUID
    username: str
    password_hash: str
    contacts: ContactBook = field(default_factory=ContactBook)

    def summary(self) -> UserSummary:
        return UserSummary(id=self.id, username=self.username)


def _require_credentials(username: str, password: str) -> None:
    if not username or not password:
        raise InvalidInput("Username and password are required.")


class IdentityStore:
    def __init__(self, sessions: SessionDirectory):
        self._lock = asyncio.Lock()
        self._users: Dict[str, User] = {}
        self._sessions = sessions

    async def register(self, username: str, password: str) -> AuthOutcome:
        _require_credentials(username, password)

        async with self._lock:
            taken = username in self._users
        if taken:
            raise AlreadyExists()

        password_hash = await _hash_password(password)

        # User map lock, then session lock (inside create_session).
        async with self._lock:
            if username in self._users:
                raise AlreadyExists()
            user = User(id=new_user_id(), username=username, password_hash=password_hash)
            session = await self._sessions.create_session(user.id, user.username)
            self._users[username] = user

        logger.info("Registered user: %s (%s)", username, user.id)
        return AuthOutcome(user=user.summary(), session=session)

    async def authenticate(self, username: str, password: str) -> AuthOutcome:
        _require_credentials(username, password)

        async with self._lock:
            user = self._users.get(username)

        if user is None:
            # Burn one hash so an unknown username costs the same as a wrong password.
            await _hash_password(password)
            raise InvalidCredentials()
        if not await _verify_password(password, user.password_hash):
            raise InvalidCredentials()

        session = await self._sessions.create_session(user.id, user.username)
        logger.info("Logged in user: %s (%s)", username, user.id)
        return AuthOutcome(user=user.summary(), session=session)

    async def add_contact(self, username: str, contact_username: str) -> None:
        if not contact_username:
            raise InvalidInput("contact_username cannot be empty")
        if contact_username == username:
            raise InvalidInput("You cannot add yourself as a contact.")

        async with self._lock:
            current = self._users.get(username)
            other = self._users.get(contact_username)

        if current is None:
            logger.warning("Add contact failed: current user %r not found", username)
            raise NotFound("User session invalid or user data missing.")
        if other is None:
            raise NotFound("User not found")

        # Two independent set unions; never hold both contact locks at once.
        await current.contacts.add(other.summary())
        await other.contacts.add(current.summary())
        logger.info("User %r added %r as a contact", username, contact_username)

    async def list_contacts(self, username: str) -> List[UserSummary]:
        user = await self.get(username)
        if user is None:
            logger.warning("Get contacts failed: user %r not found", username)
            raise NotFound("User session invalid or user data missing.")
        return await user.contacts.snapshot()

    async def get(self, username: str) -> Optional[User]:
        async with self._lock:
            return self._users.get(username)

    async def count(self) -> int:
        async with self._lock:
            return len(self._users)

    async def usernames(self) -> Tuple[str, ...]:
        async with self._lock:
            return tuple(self._users)
