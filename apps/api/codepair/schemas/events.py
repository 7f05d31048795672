"""Wire contracts for the signaling WebSocket."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(str, enum.Enum):
    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"
    GET_EXISTING_PEERS = "get-existing-peers"
    GET_CHAT_HISTORY = "get-chat-history"
    SEND_OFFER = "send-offer"
    SEND_ANSWER = "send-answer"
    SEND_ICE_CANDIDATE = "send-ice-candidate"
    CODE_CHANGE = "code-change"
    CURSOR_CHANGE = "cursor-change"
    LANGUAGE_CHANGE = "language-change"
    SEND_MESSAGE = "send-message"


class OutboundEvent(str, enum.Enum):
    CONNECTED = "connected"
    ROOM_FULL = "room-full"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    EXISTING_PEERS = "existing-peers"
    CHAT_HISTORY = "chat-history"
    RECEIVE_OFFER = "receive-offer"
    RECEIVE_ANSWER = "receive-answer"
    RECEIVE_ICE_CANDIDATE = "receive-ice-candidate"
    CODE_CHANGE = "code-change"
    CURSOR_CHANGE = "cursor-change"
    GET_LANGUAGE = "get-language"
    RECEIVE_MESSAGE = "receive-message"


class _WireModel(BaseModel):
    """Accept camelCase keys from clients while keeping snake_case attributes."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Envelope(_WireModel):
    event: str = Field(..., min_length=1, description="Event name")
    data: Any = Field(default=None, description="Event payload")


class RoomRequest(_WireModel):
    room_id: str = Field(..., alias="roomId", min_length=1)


class OfferRequest(_WireModel):
    offer: Any
    to: str = Field(..., min_length=1)


class AnswerRequest(_WireModel):
    answer: Any
    to: str = Field(..., min_length=1)


class IceCandidateRequest(_WireModel):
    candidate: Any
    to: str = Field(..., min_length=1)


class CodeChangeRequest(RoomRequest):
    code: Any = None


class CursorChangeRequest(RoomRequest):
    cursor_data: Any = Field(default=None, alias="cursorData")


class LanguageChangeRequest(RoomRequest):
    language: Any = None


class MessageBody(_WireModel):
    text: str


class SendMessageRequest(RoomRequest):
    message: MessageBody


class ChatMessage(_WireModel):
    """One stored chat line; immutable once accepted."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sender_id: str = Field(..., alias="senderId")
    text: str
    timestamp: int = Field(..., description="Milliseconds since the epoch")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True, slots=True)
class Delivery:
    """An outbound event addressed to a single connection."""

    target: str
    event: OutboundEvent
    data: Any = None

    def to_message(self) -> dict[str, Any]:
        return {"event": self.event.value, "data": self.data}
