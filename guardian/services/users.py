"""Parent and admin account management."""

from __future__ import annotations

import logging
from uuid import UUID

from guardian import access
from guardian.auth import hash_password
from guardian.errors import Conflict, Forbidden, NotFound
from guardian.models.actor import Actor
from guardian.models.user import CreateUserRequest, UpdateUserRequest, User
from guardian.repos.child_repo import ChildRepo
from guardian.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)

# Fields a client may explicitly clear with null.
_NULLABLE_FIELDS = frozenset({"phone_number", "avatar_url"})


class UserService:
    def __init__(self, users: UserRepo | None = None, children: ChildRepo | None = None) -> None:
        self.users = users or UserRepo()
        self.children = children or ChildRepo()

    async def _get(self, user_id: UUID) -> User:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFound("User not found.")
        return user

    async def _require_not_main_parent(self, user_id: UUID) -> None:
        children = await self.children.list_for_parent(user_id)
        if any(c.parent_id == user_id for c in children):
            raise Conflict("User is the main parent of one or more children and must stay a PARENT.")

    async def create(self, request: CreateUserRequest, actor: Actor) -> User:
        """
        Create an account on an admin's behalf.

        Raises:
            Forbidden: If the actor is not an admin
            Conflict: If the email is already registered
        """
        access.require(access.can_create_user(actor), "Only admins can create users.")
        user = await self.users.create(
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            password_hash=hash_password(request.password),
            phone_number=request.phone_number,
            role=request.role,
            status=request.status,
            avatar_url=request.avatar_url,
            is_verified=request.is_verified,
            additional_attributes=request.additional_attributes,
        )
        logger.info("users: admin %s created %s user %s", actor.id, user.role, user.id)
        return user

    async def find_all(self, actor: Actor) -> list[User]:
        access.require(actor.is_admin, "Only admins can list users.")
        return await self.users.list_all()

    async def find_one(self, user_id: UUID, actor: Actor) -> User:
        access.require(access.can_read_user(actor, user_id), "You can only view your own account.")
        return await self._get(user_id)

    async def get_profile(self, actor: Actor) -> User:
        if actor.is_child:
            raise Forbidden("Child accounts have no user profile.")
        return await self._get(actor.id)

    async def update(self, user_id: UUID, request: UpdateUserRequest, actor: Actor) -> User:
        """
        Partially update an account.

        Raises:
            Forbidden: If the actor may not edit this account, or a non-admin
                tries to change a role
            NotFound: If the account does not exist
            Conflict: If the new email is taken, or the role of a main
                parent would stop being PARENT
        """
        access.require(access.can_update_user(actor, user_id), "You can only update your own account.")

        fields = {
            k: v for k, v in request.model_dump(exclude_unset=True).items() if v is not None or k in _NULLABLE_FIELDS
        }
        if "role" in fields:
            access.require(access.can_change_role(actor), "You cannot change your role.")
            if fields["role"] != "PARENT":
                await self._require_not_main_parent(user_id)
        if "password" in fields:
            fields["password_hash"] = hash_password(fields.pop("password"))

        updated = await self.users.update(user_id, fields)
        if updated is None:
            raise NotFound("User not found.")
        return updated

    async def delete(self, user_id: UUID, actor: Actor) -> None:
        """
        Delete an account. Admin only, and never the admin's own.

        Raises:
            Conflict: If the user is still the main parent of a child
        """
        if actor.is_admin and actor.id == user_id:
            raise Forbidden("Admins cannot delete their own account.")
        access.require(access.can_delete_user(actor, user_id), "Only admins can delete users.")

        if not await self.users.delete(user_id):
            raise NotFound("User not found.")
        logger.info("users: admin %s deleted user %s", actor.id, user_id)


user_service = UserService()
