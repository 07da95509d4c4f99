"""The authenticated identity attached to every request and socket."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from guardian.models.user import UserRole

ActorType = Literal["user", "child"]


class Actor(BaseModel):
    """
    Who is performing an operation.

    `role` is set for user actors only. `parent_id` is set for child actors
    only and names the child's main parent.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    type: ActorType
    role: UserRole | None = None
    parent_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.type == "user" and self.role == "ADMIN"

    @property
    def is_parent(self) -> bool:
        return self.type == "user" and self.role == "PARENT"

    @property
    def is_child(self) -> bool:
        return self.type == "child"
