"""Child account models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from guardian.models.base import ApiModel
from guardian.models.user import AccountSummary

ChildGender = Literal["MALE", "FEMALE", "OTHER"]
ChildStatus = Literal["ACTIVE", "INACTIVE"]


class Location(ApiModel):
    lat: float
    lng: float
    updated_at: datetime | None = None


class Child(BaseModel):
    """Core child model. Represents a row in the children table plus its linked parents."""

    id: UUID
    first_name: str
    last_name: str
    date_of_birth: date | None = None
    gender: ChildGender | None = None
    avatar_url: str | None = None
    parent_id: UUID
    linked_parent_ids: list[UUID] = Field(default_factory=list)
    location: Location | None = None
    device_info: dict[str, Any] = Field(default_factory=dict)
    is_online: bool = False
    status: ChildStatus = "ACTIVE"
    qr_code: str | None = None
    additional_attributes: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    def is_linked_to(self, user_id: UUID) -> bool:
        """True if user_id is the main parent or one of the linked parents."""
        return self.parent_id == user_id or user_id in self.linked_parent_ids


class ChildResponse(ApiModel):
    """What the API returns for a child. Parents are resolved to summaries."""

    id: UUID
    first_name: str
    last_name: str
    date_of_birth: date | None
    gender: ChildGender | None
    avatar_url: str | None
    parent: AccountSummary | None
    linked_parents: list[AccountSummary]
    location: Location | None
    device_info: dict[str, Any]
    is_online: bool
    status: ChildStatus
    qr_code: str | None = None
    additional_attributes: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(
        cls,
        child: Child,
        accounts: dict[UUID, AccountSummary],
        include_qr_code: bool = False,
    ) -> ChildResponse:
        """
        Convert internal Child model to API response.

        Args:
            child: Child to render
            accounts: Summaries keyed by user id, for the main and linked parents
            include_qr_code: Only parents and admins ever see the login code
        """
        return cls(
            id=child.id,
            first_name=child.first_name,
            last_name=child.last_name,
            date_of_birth=child.date_of_birth,
            gender=child.gender,
            avatar_url=child.avatar_url,
            parent=accounts.get(child.parent_id),
            linked_parents=[accounts[p] for p in child.linked_parent_ids if p in accounts],
            location=child.location,
            device_info=child.device_info,
            is_online=child.is_online,
            status=child.status,
            qr_code=child.qr_code if include_qr_code else None,
            additional_attributes=child.additional_attributes,
            created_at=child.created_at,
            updated_at=child.updated_at,
        )


class CreateChildRequest(ApiModel):
    """What the client sends to POST /children."""

    model_config = ConfigDict(extra="forbid")

    parent_id: UUID | None = None  # admins only; parents always create for themselves
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    date_of_birth: date | None = None
    gender: ChildGender | None = None
    avatar_url: str | None = None
    device_info: dict[str, Any] = Field(default_factory=dict)
    status: ChildStatus = "ACTIVE"
    qr_code: str | None = Field(default=None, min_length=8, max_length=128)
    additional_attributes: dict[str, Any] = Field(default_factory=dict)


class UpdateChildRequest(ApiModel):
    """Partial update for PATCH /children/{id}."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    date_of_birth: date | None = None
    gender: ChildGender | None = None
    avatar_url: str | None = None
    device_info: dict[str, Any] | None = None
    is_online: bool | None = None
    status: ChildStatus | None = None
    additional_attributes: dict[str, Any] | None = None


class UpdateLocationRequest(ApiModel):
    """What the client sends to PATCH /children/{id}/location."""

    model_config = ConfigDict(extra="forbid")

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
