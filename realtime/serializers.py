"""
Pydantic models for request validation and wire serialization.
These models are used for both HTTP endpoints and WebSocket frame handling.

Wire names are camelCase; snake_case field names are accepted on input too.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool, TypeAdapter
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# --- HTTP ---

class AuthRequest(WireModel):
    username: str
    password: str


class AddContactRequest(WireModel):
    contact_username: str


class AuthResponse(WireModel):
    message: str = "Authentication successful"
    session_credential: str
    user_id: UUID
    username: str


# --- WebSocket: client -> server ---

class ChatMessageIn(WireModel):
    type: Literal["chatMessage"]
    to_user_id: UUID
    message: str


class TypingIndicatorIn(WireModel):
    type: Literal["typingIndicator"]
    to_user_id: UUID
    # "yes", 1 and friends are malformed, not true.
    is_typing: StrictBool


class ReadReceiptIn(WireModel):
    type: Literal["readReceipt"]
    # The original sender of the message being acknowledged.
    to_user_id: UUID
    message_id: str = Field(min_length=1)


InboundFrame = Annotated[
    Union[ChatMessageIn, TypingIndicatorIn, ReadReceiptIn],
    Field(discriminator="type"),
]
inbound_frame_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


# --- WebSocket: server -> client ---

class PresenceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ChatMessageOut(WireModel):
    type: Literal["chatMessage"] = "chatMessage"
    from_user_id: UUID
    from_username: str
    to_user_id: UUID
    message_id: str
    timestamp: str
    message: str


class StatusMessageOut(WireModel):
    type: Literal["statusMessage"] = "statusMessage"
    user_id: UUID
    username: str
    status: PresenceStatus


class ReadReceiptOut(WireModel):
    type: Literal["readReceipt"] = "readReceipt"
    # The user who just read the message.
    from_user_id: UUID
    message_id: str


class TypingIndicatorOut(WireModel):
    type: Literal["typingIndicator"] = "typingIndicator"
    from_user_id: UUID
    is_typing: bool


__all__ = [
    "AuthRequest",
    "AddContactRequest",
    "AuthResponse",
    "ChatMessageIn",
    "TypingIndicatorIn",
    "ReadReceiptIn",
    "InboundFrame",
    "inbound_frame_adapter",
    "PresenceStatus",
    "ChatMessageOut",
    "StatusMessageOut",
    "ReadReceiptOut",
    "TypingIndicatorOut",
]
