"""
Room registry: one chat room per parent-child pair.

Rooms are created lazily and idempotently. The storage layer's unique
constraints make concurrent first access safe; membership changes are
single-statement set updates. Every entry point checks access before it
mutates anything.
"""

from __future__ import annotations

import logging
from uuid import UUID

from guardian import access
from guardian.errors import Conflict, Forbidden, NotFound
from guardian.models.actor import Actor
from guardian.models.child import Child
from guardian.models.room import Room, RoomResponse
from guardian.repos.child_repo import ChildRepo
from guardian.repos.room_repo import RoomRepo
from guardian.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)


class RoomRegistry:
    def __init__(
        self,
        rooms: RoomRepo | None = None,
        children: ChildRepo | None = None,
        users: UserRepo | None = None,
    ) -> None:
        self.rooms = rooms or RoomRepo()
        self.children = children or ChildRepo()
        self.users = users or UserRepo()

    async def _child_or_404(self, child_id: UUID) -> Child:
        child = await self.children.get(child_id)
        if child is None:
            raise NotFound("Child not found.")
        return child

    async def _room_or_404(self, room_id: UUID) -> Room:
        room = await self.rooms.get(room_id)
        if room is None:
            raise NotFound("Room not found.")
        return room

    async def ensure_room(self, child: Child) -> Room:
        """Get or create the room between a child and its main parent."""
        room, created = await self.rooms.get_or_create(child.parent_id, child.id)
        if created:
            logger.info("rooms: created room %s for child %s", room.id, child.id)
        return room

    async def get_or_create_room(self, parent_id: UUID, child_id: UUID) -> Room:
        """
        Find or create the room for a parent and child.

        The room is always keyed by the child's main parent, so a linked
        parent asking for it gets the same room as the main parent.

        Raises:
            NotFound: If the child does not exist
            Forbidden: If parent_id is neither main nor linked parent
        """
        child = await self._child_or_404(child_id)
        access.require(child.is_linked_to(parent_id), "Parent is not linked to this child.")
        return await self.ensure_room(child)

    async def get_room(self, room_id: UUID, actor: Actor) -> Room:
        room = await self._room_or_404(room_id)
        access.require(access.can_read_room(actor, room), "You do not have access to this room.")
        return room

    async def invite_parent(self, room_id: UUID, user_id: UUID, actor: Actor) -> Room:
        """
        Invite another parent into a room.

        Args:
            room_id: Room UUID
            user_id: User to invite; must be an existing PARENT
            actor: Caller; must be the room's main parent or an admin

        Returns:
            The room with the new member

        Raises:
            NotFound: If the room or user does not exist
            Forbidden: If the caller may not manage invites, or the user is not a PARENT
            Conflict: If the user is the main parent or already invited
        """
        room = await self._room_or_404(room_id)
        access.require(access.can_manage_invites(actor, room), "Only the main parent can invite parents.")

        invitee = await self.users.get(user_id)
        if invitee is None:
            raise NotFound("Parent not found.")
        if invitee.role != "PARENT":
            raise Forbidden("Can only invite users with the PARENT role.")
        if user_id == room.parent_id:
            raise Conflict("The main parent is already a member of this room.")

        added = await self.rooms.add_invited_parent(room.id, user_id)
        if not added:
            raise Conflict("Parent is already invited to this room.")

        logger.info("rooms: %s invited %s to room %s", actor.id, user_id, room.id)
        return await self._room_or_404(room.id)

    async def remove_invited_parent(self, room_id: UUID, user_id: UUID, actor: Actor) -> Room:
        """Remove an invited parent. Removing a non-member returns the room unchanged."""
        room = await self._room_or_404(room_id)
        access.require(access.can_manage_invites(actor, room), "Only the main parent can remove parents.")

        removed = await self.rooms.remove_invited_parent(room.id, user_id)
        if not removed:
            return room

        logger.info("rooms: %s removed %s from room %s", actor.id, user_id, room.id)
        return await self._room_or_404(room.id)

    async def list_rooms_for_parent(self, parent_id: UUID, actor: Actor) -> list[Room]:
        access.require(access.can_list_rooms_of(actor, parent_id), "You can only list your own rooms.")
        return await self.rooms.list_for_parent(parent_id)

    async def get_room_for_child(self, child_id: UUID, actor: Actor) -> Room:
        """
        The child's room, created with its main parent if it does not exist.

        This is the path a child's app takes on first launch.
        """
        child = await self._child_or_404(child_id)
        access.require(access.can_read_child(actor, child), "You do not have access to this child.")

        room = await self.rooms.get_for_child(child.id)
        if room is None:
            room = await self.ensure_room(child)

        access.require(access.can_read_room(actor, room), "You do not have access to this room.")
        return room

    async def render(self, room: Room) -> RoomResponse:
        return (await self.render_many([room]))[0]

    async def render_many(self, rooms: list[Room]) -> list[RoomResponse]:
        """Resolve every account a list of rooms refers to, in two queries."""
        user_ids = [uid for room in rooms for uid in room.account_ids()]
        accounts = await self.users.get_summaries(user_ids)
        accounts.update(await self.children.get_summaries([room.child_id for room in rooms]))
        return [RoomResponse.from_model(room, accounts) for room in rooms]


room_registry = RoomRegistry()
