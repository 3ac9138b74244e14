"""
Error taxonomy for the relay core.

Every request-handling failure is a `RelayError` carrying a client-safe message
and the HTTP status its category maps to. None of them are fatal to the process.
"""

from __future__ import annotations


class RelayError(Exception):
    status = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_payload(self) -> dict:
        return {"message": self.message}


class Unauthorized(RelayError):
    status = 401
    default_message = "Unauthorized: Invalid session key."


class InvalidInput(RelayError):
    status = 400
    default_message = "Invalid input."


class AlreadyExists(RelayError):
    status = 409
    default_message = "Username already exists."


class NotFound(RelayError):
    status = 404
    default_message = "User not found"


class InvalidCredentials(RelayError):
    # Same message whether the username or the password was wrong.
    status = 401
    default_message = "Invalid username or password."
