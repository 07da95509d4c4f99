"""User models for parent and admin accounts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from guardian.models.base import ApiModel

UserRole = Literal["ADMIN", "PARENT"]
UserStatus = Literal["ACTIVE", "INACTIVE", "SUSPENDED"]
CodeChannel = Literal["email", "sms"]


class User(BaseModel):
    """Core user model. Represents a row in the users table."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    phone_number: str | None = None
    password_hash: str
    role: UserRole = "PARENT"
    status: UserStatus = "ACTIVE"
    avatar_url: str | None = None
    is_verified: bool = False
    verification_code: str | None = None
    verification_code_expires_at: datetime | None = None
    verification_channel: CodeChannel | None = None
    password_reset_code: str | None = None
    password_reset_expires_at: datetime | None = None
    last_code_sent_at: datetime | None = None
    google_id: str | None = None
    additional_attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class UserPublic(ApiModel):
    """What the API returns. No password hash, no codes."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    phone_number: str | None
    role: UserRole
    status: UserStatus
    avatar_url: str | None
    is_verified: bool
    additional_attributes: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserPublic:
        """Convert internal User model to public API response."""
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            phone_number=user.phone_number,
            role=user.role,
            status=user.status,
            avatar_url=user.avatar_url,
            is_verified=user.is_verified,
            additional_attributes=user.additional_attributes,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AccountSummary(ApiModel):
    """Name and avatar only. Used when rooms and children embed accounts."""

    id: UUID
    first_name: str
    last_name: str
    avatar_url: str | None = None


class CreateUserRequest(ApiModel):
    """What an admin sends to POST /users."""

    model_config = ConfigDict(extra="forbid")

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone_number: str | None = Field(default=None, max_length=32)
    password: str = Field(min_length=6, max_length=128)
    role: UserRole = "PARENT"
    avatar_url: str | None = None
    status: UserStatus = "ACTIVE"
    is_verified: bool = False
    additional_attributes: dict[str, Any] = Field(default_factory=dict)


class UpdateUserRequest(ApiModel):
    """Partial update for PATCH /users/{id}. Only set fields are written."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone_number: str | None = Field(default=None, max_length=32)
    password: str | None = Field(default=None, min_length=6, max_length=128)
    role: UserRole | None = None
    avatar_url: str | None = None
    status: UserStatus | None = None
    is_verified: bool | None = None
    additional_attributes: dict[str, Any] | None = None
