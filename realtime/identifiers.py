"""
Opaque identifiers used by the relay core.

Session keys are bearer credentials. They get their own type so a username or a
user id can never be handed to code that expects a credential.
"""

from __future__ import annotations

import re
import secrets
import uuid
from typing import Optional

_SESSION_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{43}$")


class SessionKey(str):
    """URL-safe 256-bit session credential."""

    __slots__ = ()

    def __new__(cls, value: str) -> "SessionKey":
        if not isinstance(value, str) or not _SESSION_KEY_RE.match(value):
            raise ValueError("malformed session key")
        return super().__new__(cls, value)

    @classmethod
    def generate(cls) -> "SessionKey":
        return cls(secrets.token_urlsafe(32))

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SessionKey"]:
        """Returns None instead of raising for missing or malformed input."""
        if not value:
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None

    def redacted(self) -> str:
        # Enough to correlate log lines, useless as a credential.
        return f"{self[:6]}…"

    def __repr__(self) -> str:
        return f"SessionKey({self.redacted()!r})"


def new_user_id() -> uuid.UUID:
    return uuid.uuid4()


def new_message_id() -> str:
    return str(uuid.uuid4())
