"""Child accounts: CRUD, parent linking, and location updates."""

from __future__ import annotations

import logging
import secrets
from typing import Any
from uuid import UUID

from guardian import access
from guardian.errors import Conflict, Forbidden, InvalidInput, NotFound
from guardian.models.actor import Actor
from guardian.models.child import (
    Child,
    ChildResponse,
    CreateChildRequest,
    UpdateChildRequest,
    UpdateLocationRequest,
)
from guardian.models.room import Room
from guardian.repos.child_repo import ChildRepo
from guardian.repos.user_repo import UserRepo
from guardian.services.room_registry import RoomRegistry, room_registry

logger = logging.getLogger(__name__)

# Fields a client may explicitly clear with null.
_NULLABLE_FIELDS = frozenset({"date_of_birth", "gender", "avatar_url"})


def generate_qr_code() -> str:
    """32 hex characters; the login secret a child's device scans."""
    return secrets.token_hex(16)


class ChildService:
    def __init__(
        self,
        children: ChildRepo | None = None,
        users: UserRepo | None = None,
        registry: RoomRegistry | None = None,
    ) -> None:
        self.children = children or ChildRepo()
        self.users = users or UserRepo()
        self.registry = registry or room_registry

    async def _get(self, child_id: UUID) -> Child:
        child = await self.children.get(child_id)
        if child is None:
            raise NotFound("Child not found.")
        return child

    async def _require_parent_account(self, user_id: UUID) -> None:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFound("Parent not found.")
        if user.role != "PARENT":
            raise InvalidInput("Children can only be assigned to parent accounts.")

    async def create(self, request: CreateChildRequest, actor: Actor) -> Child:
        """
        Create a child and provision its room with the main parent.

        Parents always create for themselves; admins must name the parent.

        Raises:
            Forbidden: If the actor may not create children for that parent
            InvalidInput: If the parent is missing or not a PARENT account
            Conflict: If an explicit qr_code is already taken
        """
        if actor.is_admin:
            if request.parent_id is None:
                raise InvalidInput("parentId is required when an admin creates a child.")
            parent_id = request.parent_id
        else:
            parent_id = request.parent_id or actor.id

        access.require(access.can_create_child_for(actor, parent_id), "You can only create children for yourself.")
        await self._require_parent_account(parent_id)

        fields = request.model_dump(exclude={"parent_id", "qr_code"})
        child = await self.children.create(parent_id, request.qr_code or generate_qr_code(), fields)
        await self.registry.ensure_room(child)

        logger.info("children: %s created child %s for parent %s", actor.id, child.id, parent_id)
        return child

    async def find_all(self, actor: Actor) -> list[Child]:
        """Admins see every child; parents see the children they are linked to."""
        if actor.is_admin:
            return await self.children.list_all()
        if actor.is_parent:
            return await self.children.list_for_parent(actor.id)
        raise Forbidden("Children cannot list accounts.")

    async def find_one(self, child_id: UUID, actor: Actor) -> Child:
        child = await self._get(child_id)
        access.require(access.can_read_child(actor, child), "You do not have access to this child.")
        return child

    async def get_profile(self, actor: Actor) -> Child:
        """The calling child's own record."""
        if not actor.is_child:
            raise Forbidden("Only child accounts have a child profile.")
        return await self._get(actor.id)

    async def find_by_parent(self, parent_id: UUID, actor: Actor) -> list[Child]:
        access.require(access.can_list_children_of(actor, parent_id), "You can only list your own children.")
        return await self.children.list_for_parent(parent_id)

    async def update(self, child_id: UUID, request: UpdateChildRequest, actor: Actor) -> Child:
        child = await self._get(child_id)
        access.require(access.can_update_child(actor, child), "You do not have access to this child.")

        fields: dict[str, Any] = {
            k: v for k, v in request.model_dump(exclude_unset=True).items() if v is not None or k in _NULLABLE_FIELDS
        }
        updated = await self.children.update(child.id, fields)
        if updated is None:
            raise NotFound("Child not found.")
        return updated

    async def update_location(self, child_id: UUID, request: UpdateLocationRequest, actor: Actor) -> Child:
        child = await self._get(child_id)
        access.require(access.can_update_child(actor, child), "You do not have access to this child.")

        updated = await self.children.update_location(child.id, request.lat, request.lng)
        if updated is None:
            raise NotFound("Child not found.")
        return updated

    async def delete(self, child_id: UUID, actor: Actor) -> Room | None:
        """
        Delete a child. Its room and message history go with it.

        Returns:
            The room that was removed with the child, if it had one
        """
        child = await self._get(child_id)
        access.require(access.can_delete_child(actor, child), "Only the main parent can delete a child.")

        room = await self.registry.rooms.get_for_child(child.id, active_only=False)
        if not await self.children.delete(child.id):
            raise NotFound("Child not found.")
        logger.info("children: %s deleted child %s", actor.id, child.id)
        return room

    async def link_parent(self, child_id: UUID, parent_id: UUID, actor: Actor) -> Child:
        """
        Link a secondary parent to a child.

        Linking grants access to the child record only; room access still
        needs an invitation from the main parent.

        Raises:
            Conflict: If the user is already the main or a linked parent
        """
        child = await self._get(child_id)
        access.require(access.can_manage_child_parents(actor, child), "Only the main parent can link parents.")
        await self._require_parent_account(parent_id)

        if parent_id == child.parent_id:
            raise Conflict("This user is already the main parent.")
        if not await self.children.add_linked_parent(child.id, parent_id):
            raise Conflict("Parent is already linked to this child.")

        logger.info("children: %s linked parent %s to child %s", actor.id, parent_id, child.id)
        return await self._get(child.id)

    async def unlink_parent(self, child_id: UUID, parent_id: UUID, actor: Actor) -> Child:
        """Unlink a secondary parent. Unlinking a non-member is a no-op."""
        child = await self._get(child_id)
        access.require(access.can_manage_child_parents(actor, child), "Only the main parent can unlink parents.")

        if not await self.children.remove_linked_parent(child.id, parent_id):
            return child
        return await self._get(child.id)

    async def render(self, child: Child, actor: Actor) -> ChildResponse:
        return (await self.render_many([child], actor))[0]

    async def render_many(self, children: list[Child], actor: Actor) -> list[ChildResponse]:
        """Resolve parent summaries in one query. Children never see their own QR code."""
        user_ids = [uid for c in children for uid in (c.parent_id, *c.linked_parent_ids)]
        accounts = await self.users.get_summaries(user_ids)
        include_qr = not actor.is_child
        return [ChildResponse.from_model(c, accounts, include_qr_code=include_qr) for c in children]


child_service = ChildService()
