"""Message models: senders, payloads, and the wire shapes for chat."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from guardian.models.base import ApiModel

MessageType = Literal["TEXT", "AUDIO", "CALL_OFFER", "CALL_ANSWER", "ICE_CANDIDATE"]
SignalType = Literal["CALL_OFFER", "CALL_ANSWER", "ICE_CANDIDATE"]
SIGNAL_TYPES: frozenset[str] = frozenset({"CALL_OFFER", "CALL_ANSWER", "ICE_CANDIDATE"})

SenderKind = Literal["PARENT_SIDE", "CHILD_SIDE"]
# How clients name the sender kind on the wire.
SenderModel = Literal["User", "Child"]

AUDIO_PREVIEW_TEXT = "[Audio]"

_KIND_BY_MODEL: dict[str, SenderKind] = {"User": "PARENT_SIDE", "Child": "CHILD_SIDE"}
_MODEL_BY_KIND: dict[str, SenderModel] = {"PARENT_SIDE": "User", "CHILD_SIDE": "Child"}


class Sender(BaseModel):
    """Tagged sender: a parent-side user or the room's child."""

    model_config = ConfigDict(frozen=True)

    kind: SenderKind
    id: UUID

    @classmethod
    def from_wire(cls, sender_model: SenderModel, sender_id: UUID) -> Sender:
        return cls(kind=_KIND_BY_MODEL[sender_model], id=sender_id)

    @property
    def model(self) -> SenderModel:
        return _MODEL_BY_KIND[self.kind]


class AudioAttachment(ApiModel):
    url: str
    duration_sec: float | None = None
    mime_type: str | None = None
    size_bytes: int | None = None
    external_ref: str | None = None


class Message(BaseModel):
    """Core message model. Represents a row in the messages table."""

    id: UUID
    seq: int
    room_id: UUID
    sender: Sender
    type: MessageType
    text: str | None = None
    audio: AudioAttachment | None = None
    signaling_payload: dict[str, Any] | None = None
    is_delivered: bool = False
    is_read: bool = False
    created_at: datetime


class MessageResponse(ApiModel):
    """What the API and the realtime channel send for a message."""

    id: UUID
    room_id: UUID
    sender_model: SenderModel
    sender_id: UUID
    type: MessageType
    text: str | None
    audio: AudioAttachment | None
    signaling_payload: dict[str, Any] | None
    is_delivered: bool
    is_read: bool
    created_at: datetime

    @classmethod
    def from_model(cls, message: Message) -> MessageResponse:
        """Convert internal Message model to public API response."""
        return cls(
            id=message.id,
            room_id=message.room_id,
            sender_model=message.sender.model,
            sender_id=message.sender.id,
            type=message.type,
            text=message.text,
            audio=message.audio,
            signaling_payload=message.signaling_payload,
            is_delivered=message.is_delivered,
            is_read=message.is_read,
            created_at=message.created_at,
        )


class SendTextRequest(ApiModel):
    """What the client sends to POST /messages/room/{room_id}/text."""

    model_config = ConfigDict(extra="forbid")

    text: str = Field(min_length=1, max_length=5000)
    sender_model: SenderModel
    sender_id: UUID


class SendSignalRequest(ApiModel):
    """What the client sends to POST /messages/room/{room_id}/signal."""

    model_config = ConfigDict(extra="forbid")

    type: SignalType
    sender_model: SenderModel
    sender_id: UUID
    payload: dict[str, Any]
