"""
Pydantic models for Guardian.

All data shapes defined here. No imports from db, repos, or routes.
"""

from guardian.models.actor import Actor
from guardian.models.child import (
    Child,
    ChildResponse,
    CreateChildRequest,
    Location,
    UpdateChildRequest,
    UpdateLocationRequest,
)
from guardian.models.message import (
    AudioAttachment,
    Message,
    MessageResponse,
    Sender,
    SendSignalRequest,
    SendTextRequest,
)
from guardian.models.room import LastMessage, Room, RoomResponse
from guardian.models.user import (
    AccountSummary,
    CreateUserRequest,
    UpdateUserRequest,
    User,
    UserPublic,
)

__all__ = [
    # Identity
    "Actor",
    "User",
    "UserPublic",
    "AccountSummary",
    "CreateUserRequest",
    "UpdateUserRequest",
    # Children
    "Child",
    "ChildResponse",
    "Location",
    "CreateChildRequest",
    "UpdateChildRequest",
    "UpdateLocationRequest",
    # Rooms and messages
    "Room",
    "RoomResponse",
    "LastMessage",
    "Message",
    "MessageResponse",
    "Sender",
    "AudioAttachment",
    "SendTextRequest",
    "SendSignalRequest",
]
