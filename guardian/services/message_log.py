"""
Message log: the append-only, per-room conversation history.

Appends are checked twice: the caller must be allowed to post into the room,
and the sender named in the message must be one of the room's participants.
"""

from __future__ import annotations

import logging
from typing import Any, Literal
from uuid import UUID

from guardian import access, config
from guardian.errors import InvalidInput
from guardian.models.actor import Actor
from guardian.models.message import (
    AUDIO_PREVIEW_TEXT,
    SIGNAL_TYPES,
    AudioAttachment,
    Message,
    MessageType,
    Sender,
    SignalType,
)
from guardian.models.room import Room
from guardian.repos.message_repo import MessageRepo
from guardian.services.audio_storage import AudioUploader, audio_uploader
from guardian.services.room_registry import RoomRegistry, room_registry

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

AudioSenderFilter = Literal["parent", "child", "me", "all"]


def clamp_limit(limit: int | None) -> int:
    """Page size in [1, MAX_PAGE_SIZE]; missing or non-positive means the default."""
    if limit is None or limit <= 0:
        return DEFAULT_PAGE_SIZE
    return min(limit, MAX_PAGE_SIZE)


class MessageLog:
    def __init__(
        self,
        messages: MessageRepo | None = None,
        registry: RoomRegistry | None = None,
        uploader: AudioUploader | None = None,
    ) -> None:
        self.messages = messages or MessageRepo()
        self.registry = registry or room_registry
        self.uploader = uploader or audio_uploader

    async def _writable_room(self, room_id: UUID, sender: Sender, actor: Actor) -> Room:
        room = await self.registry.get_room(room_id, actor)
        access.require(access.can_post_in_room(actor, room), "You cannot post in this room.")
        access.require(access.is_legitimate_sender(room, sender), "Sender is not a participant of this room.")
        return room

    async def append(
        self,
        room_id: UUID,
        sender: Sender,
        message_type: MessageType,
        actor: Actor,
        *,
        text: str | None = None,
        audio: AudioAttachment | None = None,
        signaling_payload: dict[str, Any] | None = None,
    ) -> Message:
        """
        Validate and store one message.

        Conversational messages (TEXT, AUDIO) refresh the room's preview;
        signaling messages are logged without touching it.

        Raises:
            NotFound: If the room does not exist
            Forbidden: If the caller or the sender is not a room participant
        """
        room = await self._writable_room(room_id, sender, actor)

        if message_type in SIGNAL_TYPES:
            preview = None
        elif message_type == "AUDIO":
            preview = AUDIO_PREVIEW_TEXT
        else:
            preview = text

        message = await self.messages.append(
            room.id,
            sender,
            message_type,
            text=text,
            audio=audio,
            signaling_payload=signaling_payload,
            preview_text=preview,
        )
        logger.debug("messages: %s %s in room %s", message_type, message.id, room.id)
        return message

    async def send_text(self, room_id: UUID, sender: Sender, text: str, actor: Actor) -> Message:
        return await self.append(room_id, sender, "TEXT", actor, text=text)

    async def send_signal(
        self,
        room_id: UUID,
        sender: Sender,
        signal_type: SignalType,
        payload: dict[str, Any],
        actor: Actor,
    ) -> Message:
        if signal_type not in SIGNAL_TYPES:
            raise InvalidInput(f"Unsupported signal type: {signal_type}")
        return await self.append(room_id, sender, signal_type, actor, signaling_payload=payload)

    async def send_audio(
        self,
        room_id: UUID,
        sender: Sender,
        data: bytes,
        mime_type: str,
        actor: Actor,
        duration_sec: float | None = None,
    ) -> Message:
        """
        Upload a voice message and append it.

        Access is checked before the upload so rejected senders never reach
        storage.

        Raises:
            InvalidInput: If the clip is empty, too large, or not audio
        """
        if not data:
            raise InvalidInput("Audio file is empty.")
        if len(data) > config.settings.AUDIO_MAX_BYTES:
            raise InvalidInput("Audio file is too large.")
        if not mime_type.startswith("audio/"):
            raise InvalidInput("Only audio files are accepted.")

        room = await self._writable_room(room_id, sender, actor)
        stored = await self.uploader.store(room.id, data, mime_type)
        attachment = AudioAttachment(
            url=stored.url,
            duration_sec=duration_sec,
            mime_type=mime_type,
            size_bytes=len(data),
            external_ref=stored.external_ref,
        )
        return await self.append(room.id, sender, "AUDIO", actor, audio=attachment)

    async def list_messages(
        self,
        room_id: UUID,
        actor: Actor,
        limit: int | None = None,
        before_id: UUID | None = None,
    ) -> list[Message]:
        """
        Newest-first page of a room's history.

        Args:
            room_id: Room UUID
            actor: Caller; must have read access to the room
            limit: Page size, clamped to [1, 100], default 50
            before_id: Exclusive cursor; pass the oldest id of the previous page

        Raises:
            InvalidInput: If before_id is not a message of this room
        """
        room = await self.registry.get_room(room_id, actor)

        before_seq = None
        if before_id is not None:
            before_seq = await self.messages.get_seq(room.id, before_id)
            if before_seq is None:
                raise InvalidInput("beforeId does not refer to a message in this room.")

        return await self.messages.list_for_room(room.id, clamp_limit(limit), before_seq)

    async def list_audio(
        self,
        room_id: UUID,
        actor: Actor,
        sender_filter: AudioSenderFilter = "all",
    ) -> list[Message]:
        """
        Voice messages of a room, filtered by who sent them.

        "parent" and "child" filter by side; "me" narrows to the caller's own
        clips; "all" applies no filter.
        """
        room = await self.registry.get_room(room_id, actor)

        if sender_filter == "parent":
            return await self.messages.list_audio(room.id, sender_kind="PARENT_SIDE")
        if sender_filter == "child":
            return await self.messages.list_audio(room.id, sender_kind="CHILD_SIDE")
        if sender_filter == "me":
            kind = "CHILD_SIDE" if actor.is_child else "PARENT_SIDE"
            return await self.messages.list_audio(room.id, sender_kind=kind, sender_id=actor.id)
        return await self.messages.list_audio(room.id)


message_log = MessageLog()
