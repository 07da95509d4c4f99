"""User account routes: admin CRUD and self-service profile."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from guardian.auth import get_current_actor
from guardian.models.actor import Actor
from guardian.models.auth import StatusResponse
from guardian.models.user import CreateUserRequest, UpdateUserRequest, UserPublic
from guardian.realtime.hub import hub
from guardian.services.users import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=201)
async def create_user(
    req: CreateUserRequest,
    actor: Actor = Depends(get_current_actor),
) -> UserPublic:
    """Create a user. Admin only."""
    user = await user_service.create(req, actor)
    return UserPublic.from_user(user)


@router.get("", status_code=200)
async def list_users(actor: Actor = Depends(get_current_actor)) -> list[UserPublic]:
    users = await user_service.find_all(actor)
    return [UserPublic.from_user(u) for u in users]


@router.get("/profile", status_code=200)
async def get_profile(actor: Actor = Depends(get_current_actor)) -> UserPublic:
    """The signed-in user's own account."""
    user = await user_service.get_profile(actor)
    return UserPublic.from_user(user)


@router.get("/{user_id}", status_code=200)
async def get_user(
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> UserPublic:
    user = await user_service.find_one(user_id, actor)
    return UserPublic.from_user(user)


@router.patch("/{user_id}", status_code=200)
async def update_user(
    user_id: UUID,
    req: UpdateUserRequest,
    actor: Actor = Depends(get_current_actor),
) -> UserPublic:
    """Update an account. Parents may edit only themselves and never their role."""
    user = await user_service.update(user_id, req, actor)
    return UserPublic.from_user(user)


@router.delete("/{user_id}", status_code=200)
async def delete_user(
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> StatusResponse:
    await user_service.delete(user_id, actor)
    hub.evict_account(user_id)
    return StatusResponse(message="User deleted.")
