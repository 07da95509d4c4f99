"""Room models: one chat room per parent-child pair."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from guardian.models.base import ApiModel
from guardian.models.message import MessageType, Sender, SenderModel
from guardian.models.user import AccountSummary


class LastMessage(BaseModel):
    """Denormalized preview of the newest conversational message."""

    text: str | None
    type: MessageType
    sender: Sender
    created_at: datetime


class Room(BaseModel):
    """Core room model. Represents a row in the rooms table plus its invited parents."""

    id: UUID
    parent_id: UUID
    child_id: UUID
    invited_parent_ids: list[UUID] = Field(default_factory=list)
    is_active: bool = True
    last_message: LastMessage | None = None
    created_at: datetime
    updated_at: datetime

    def is_parent_side_member(self, user_id: UUID) -> bool:
        """True for the main parent and every invited parent."""
        return self.parent_id == user_id or user_id in self.invited_parent_ids

    def account_ids(self) -> list[UUID]:
        """User ids that must be resolved to summaries for a response."""
        return [self.parent_id, *self.invited_parent_ids]


class LastMessageResponse(ApiModel):
    text: str | None
    type: MessageType
    sender_model: SenderModel
    sender_id: UUID
    created_at: datetime


class RoomResponse(ApiModel):
    """What the API returns for a room. Accounts are summaries, never credentials."""

    id: UUID
    parent: AccountSummary | None
    child: AccountSummary | None
    invited_parents: list[AccountSummary]
    is_active: bool
    last_message: LastMessageResponse | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, room: Room, accounts: dict[UUID, AccountSummary]) -> RoomResponse:
        """
        Convert internal Room model to API response.

        Args:
            room: Room to render
            accounts: Summaries keyed by id, covering users and the child
        """
        last = None
        if room.last_message is not None:
            last = LastMessageResponse(
                text=room.last_message.text,
                type=room.last_message.type,
                sender_model=room.last_message.sender.model,
                sender_id=room.last_message.sender.id,
                created_at=room.last_message.created_at,
            )
        return cls(
            id=room.id,
            parent=accounts.get(room.parent_id),
            child=accounts.get(room.child_id),
            invited_parents=[accounts[p] for p in room.invited_parent_ids if p in accounts],
            is_active=room.is_active,
            last_message=last,
            created_at=room.created_at,
            updated_at=room.updated_at,
        )
