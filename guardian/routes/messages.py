"""Chat routes: rooms, history, and posting text, audio and call signals."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from guardian import config
from guardian.auth import get_current_actor
from guardian.models.actor import Actor
from guardian.models.message import (
    MessageResponse,
    Sender,
    SenderModel,
    SendSignalRequest,
    SendTextRequest,
)
from guardian.models.realtime import SignalBroadcast
from guardian.models.room import RoomResponse
from guardian.realtime.hub import frame, hub
from guardian.services.message_log import AudioSenderFilter, message_log
from guardian.services.room_registry import room_registry

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/rooms/parent/{parent_id}", status_code=200)
async def list_rooms_for_parent(
    parent_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> list[RoomResponse]:
    """Rooms the parent owns or was invited to, most recently active first."""
    rooms = await room_registry.list_rooms_for_parent(parent_id, actor)
    return await room_registry.render_many(rooms)


@router.get("/room/child/{child_id}", status_code=200)
async def get_room_for_child(
    child_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> RoomResponse:
    """The child's room, created on first access."""
    room = await room_registry.get_room_for_child(child_id, actor)
    return await room_registry.render(room)


@router.get("/room/{room_id}", status_code=200)
async def get_room(
    room_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> RoomResponse:
    room = await room_registry.get_room(room_id, actor)
    return await room_registry.render(room)


@router.get("/room/{room_id}/messages", status_code=200)
async def list_messages(
    room_id: UUID,
    limit: Annotated[int | None, Query()] = None,
    before_id: Annotated[UUID | None, Query(alias="beforeId")] = None,
    actor: Actor = Depends(get_current_actor),
) -> list[MessageResponse]:
    """
    Newest-first history.

    Pass the id of the oldest message you have as `beforeId` to get the
    page before it. `limit` defaults to 50 and is capped at 100.
    """
    messages = await message_log.list_messages(room_id, actor, limit=limit, before_id=before_id)
    return [MessageResponse.from_model(m) for m in messages]


@router.get("/room/{room_id}/audio", status_code=200)
async def list_audio(
    room_id: UUID,
    sender: Annotated[AudioSenderFilter, Query()] = "all",
    actor: Actor = Depends(get_current_actor),
) -> list[MessageResponse]:
    messages = await message_log.list_audio(room_id, actor, sender)
    return [MessageResponse.from_model(m) for m in messages]


@router.post("/room/{room_id}/text", status_code=201)
async def send_text(
    room_id: UUID,
    req: SendTextRequest,
    actor: Actor = Depends(get_current_actor),
) -> MessageResponse:
    message = await message_log.send_text(room_id, Sender.from_wire(req.sender_model, req.sender_id), req.text, actor)
    response = MessageResponse.from_model(message)
    hub.broadcast(message.room_id, frame("newMessage", response))
    return response


@router.post("/room/{room_id}/audio", status_code=201)
async def send_audio(
    room_id: UUID,
    file: Annotated[UploadFile, File()],
    sender_model: Annotated[SenderModel, Form(alias="senderModel")],
    sender_id: Annotated[UUID, Form(alias="senderId")],
    duration_sec: Annotated[float | None, Form(alias="durationSec", ge=0)] = None,
    actor: Actor = Depends(get_current_actor),
) -> MessageResponse:
    """Upload a voice message (multipart). Files over the size cap are rejected."""
    # At most one byte past the cap.
    data = await file.read(config.settings.AUDIO_MAX_BYTES + 1)
    message = await message_log.send_audio(
        room_id,
        Sender.from_wire(sender_model, sender_id),
        data,
        file.content_type or "application/octet-stream",
        actor,
        duration_sec=duration_sec,
    )
    response = MessageResponse.from_model(message)
    hub.broadcast(message.room_id, frame("newMessage", response))
    return response


@router.post("/room/{room_id}/signal", status_code=201)
async def send_signal(
    room_id: UUID,
    req: SendSignalRequest,
    actor: Actor = Depends(get_current_actor),
) -> MessageResponse:
    """Log a call-signaling message and relay it to the room's live sockets."""
    message = await message_log.send_signal(
        room_id,
        Sender.from_wire(req.sender_model, req.sender_id),
        req.type,
        req.payload,
        actor,
    )
    hub.broadcast(message.room_id, frame("signal", SignalBroadcast.from_model(message)))
    return MessageResponse.from_model(message)


@router.post("/room/{room_id}/invite/{parent_id}", status_code=200)
async def invite_parent(
    room_id: UUID,
    parent_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> RoomResponse:
    """Invite another parent into the room. Main parent or admin."""
    room = await room_registry.invite_parent(room_id, parent_id, actor)
    return await room_registry.render(room)


@router.delete("/room/{room_id}/invite/{parent_id}", status_code=200)
async def remove_invited_parent(
    room_id: UUID,
    parent_id: UUID,
    actor: Actor = Depends(get_current_actor),
) -> RoomResponse:
    """Remove an invited parent. Removing someone not invited is a no-op."""
    room = await room_registry.remove_invited_parent(room_id, parent_id, actor)
    hub.evict(room.id, parent_id)
    return await room_registry.render(room)
