"""Payloads of the realtime chat channel."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from guardian.models.base import ApiModel
from guardian.models.message import Message, SenderModel, SignalType


class RoomEvent(ApiModel):
    """Payload of joinRoom and leaveRoom."""

    room_id: UUID


class SendTextEvent(ApiModel):
    room_id: UUID
    text: str = Field(min_length=1, max_length=5000)
    sender_model: SenderModel
    sender_id: UUID


class SignalEvent(ApiModel):
    room_id: UUID
    sender_model: SenderModel
    sender_id: UUID
    type: SignalType
    payload: dict[str, Any]


class Presence(ApiModel):
    user_id: UUID
    state: str
    room_id: UUID


class SignalBroadcast(ApiModel):
    """What other room members receive for a call-signaling message."""

    message_id: UUID
    room_id: UUID
    sender_model: SenderModel
    sender_id: UUID
    type: SignalType
    payload: dict[str, Any] | None
    created_at: datetime

    @classmethod
    def from_model(cls, message: Message) -> SignalBroadcast:
        return cls(
            message_id=message.id,
            room_id=message.room_id,
            sender_model=message.sender.model,
            sender_id=message.sender.id,
            type=message.type,
            payload=message.signaling_payload,
            created_at=message.created_at,
        )
