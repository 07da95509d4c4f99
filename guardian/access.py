"""
Access control for Guardian.

Every decision is a pure function of (actor, resource): no I/O, no side
effects. Services load the resource, ask here, and only then mutate.

Rules, first match wins:
  1. ADMIN users may do anything to accounts and rooms.
  2. A child may read/update itself and use only its own room.
  3. A PARENT user may manage itself, the children it is main or linked
     parent of (delete needs main parent), and rooms it is main or invited
     parent of (invites need main parent).
  4. Everything else is denied.
"""

from __future__ import annotations

from uuid import UUID

from guardian.errors import Forbidden
from guardian.models.actor import Actor
from guardian.models.child import Child
from guardian.models.message import Sender
from guardian.models.room import Room


def require(allowed: bool, detail: str) -> None:
    """Raise Forbidden unless the decision allows the operation."""
    if not allowed:
        raise Forbidden(detail)


# ── accounts ────────────────────────────────────────────────────────────────


def can_create_user(actor: Actor) -> bool:
    return actor.is_admin


def can_read_user(actor: Actor, user_id: UUID) -> bool:
    if actor.is_admin:
        return True
    return actor.is_parent and actor.id == user_id


def can_update_user(actor: Actor, user_id: UUID) -> bool:
    return can_read_user(actor, user_id)


def can_change_role(actor: Actor) -> bool:
    return actor.is_admin


def can_delete_user(actor: Actor, user_id: UUID) -> bool:
    # Admins cannot delete their own account.
    return actor.is_admin and actor.id != user_id


# ── children ────────────────────────────────────────────────────────────────


def can_create_child_for(actor: Actor, parent_id: UUID) -> bool:
    if actor.is_admin:
        return True
    return actor.is_parent and actor.id == parent_id


def can_read_child(actor: Actor, child: Child) -> bool:
    if actor.is_admin:
        return True
    if actor.is_child:
        return actor.id == child.id
    if actor.is_parent:
        return child.is_linked_to(actor.id)
    return False


def can_update_child(actor: Actor, child: Child) -> bool:
    return can_read_child(actor, child)


def can_delete_child(actor: Actor, child: Child) -> bool:
    if actor.is_admin:
        return True
    if actor.is_parent:
        return child.parent_id == actor.id
    return False


def can_manage_child_parents(actor: Actor, child: Child) -> bool:
    """Linking and unlinking secondary parents is a main-parent privilege."""
    if actor.is_admin:
        return True
    return actor.is_parent and child.parent_id == actor.id


def can_list_children_of(actor: Actor, parent_id: UUID) -> bool:
    if actor.is_admin:
        return True
    return actor.is_parent and actor.id == parent_id


# ── rooms and messages ──────────────────────────────────────────────────────


def can_read_room(actor: Actor, room: Room) -> bool:
    if actor.is_admin:
        return True
    if actor.is_child:
        return room.child_id == actor.id
    if actor.is_parent:
        return room.is_parent_side_member(actor.id)
    return False


def can_post_in_room(actor: Actor, room: Room) -> bool:
    return can_read_room(actor, room)


def can_manage_invites(actor: Actor, room: Room) -> bool:
    """Only the main parent (or an admin) may invite or remove parents."""
    if actor.is_admin:
        return True
    return actor.is_parent and room.parent_id == actor.id


def can_list_rooms_of(actor: Actor, parent_id: UUID) -> bool:
    if actor.is_admin:
        return True
    return actor.is_parent and actor.id == parent_id


def is_legitimate_sender(room: Room, sender: Sender) -> bool:
    """
    Whether `sender` is a current participant of `room`.

    Checked independently of who is calling: an authorized caller may post on
    behalf of a sender id, but that id must belong to the room.
    """
    if sender.kind == "CHILD_SIDE":
        return sender.id == room.child_id
    return room.is_parent_side_member(sender.id)
