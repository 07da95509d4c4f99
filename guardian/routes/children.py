"""Child routes: CRUD, profile, location, and parent linking."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from guardian.auth import get_current_actor
from guardian.models.actor import Actor
from guardian.models.auth import StatusResponse
from guardian.models.child import (
    ChildResponse,
    CreateChildRequest,
    UpdateChildRequest,
    UpdateLocationRequest,
)
from guardian.realtime.hub import hub
from guardian.services.children import child_service

router = APIRouter(prefix="/children", tags=["children"])


@router.post("", status_code=201)
async def create_child(
    req: CreateChildRequest,
    actor: Actor = Depends(get_current_actor),
) -> ChildResponse:
    """Create a child and its room with the main parent."""
    child = await child_service.create(req, actor)
    return await child_service.render(child, actor)


@router.get("", status_code=200)
async def list_children(actor: Actor = Depends(get_current_actor)) -> list[ChildResponse]:
    """All children for admins; linked children for parents."""
    children = await child_service.find_all(actor)
    return await child_service.render_many(children, actor)


@router.get("/profile", status_code=200)
async def get_child_profile(actor: Actor = Depends(get_current_actor)) -> ChildResponse:
    """The signed-in child's own record."""
    child = await child_service.get_profile(actor)
    return await child_service.render(child, actor)


@router.get("/parent/{parent_id}", status_code=200)
async def list_children_of_parent(
    parent_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> list[ChildResponse]:
    children = await child_service.find_by_parent(parent_id, actor)
    return await child_service.render_many(children, actor)


@router.get("/{child_id}", status_code=200)
async def get_child(
    child_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> ChildResponse:
    child = await child_service.find_one(child_id, actor)
    return await child_service.render(child, actor)


@router.patch("/{child_id}", status_code=200)
async def update_child(
    child_id: UUID,
    req: UpdateChildRequest,
    actor: Actor = Depends(get_current_actor),
) -> ChildResponse:
    child = await child_service.update(child_id, req, actor)
    return await child_service.render(child, actor)


@router.patch("/{child_id}/location", status_code=200)
async def update_child_location(
    child_id: UUID,
    req: UpdateLocationRequest,
    actor: Actor = Depends(get_current_actor),
) -> ChildResponse:
    """Record the child's current position. Usually sent by the child's device."""
    child = await child_service.update_location(child_id, req, actor)
    return await child_service.render(child, actor)


@router.delete("/{child_id}", status_code=200)
async def delete_child(
    child_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> StatusResponse:
    """Delete a child together with its room and messages. Main parent or admin."""
    room = await child_service.delete(child_id, actor)
    if room is not None:
        hub.evict(room.id)
    return StatusResponse(message="Child deleted.")


@router.post("/{child_id}/parents/{parent_id}", status_code=200)
async def link_parent(
    child_id: UUID,
    parent_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> ChildResponse:
    """Link another parent to the child. Main parent or admin."""
    child = await child_service.link_parent(child_id, parent_id, actor)
    return await child_service.render(child, actor)


@router.delete("/{child_id}/parents/{parent_id}", status_code=200)
async def unlink_parent(
    child_id: UUID,
    parent_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> ChildResponse:
    child = await child_service.unlink_parent(child_id, parent_id, actor)
    return await child_service.render(child, actor)
