"""Repository for the append-only message log."""

from __future__ import annotations

from typing import Any
from uuid import UUID

import asyncpg

from guardian.db import connection, retry_read
from guardian.models.message import AudioAttachment, Message, MessageType, Sender, SenderKind


def _row_to_message(row: asyncpg.Record) -> Message:
    """Convert a database row to a Message model."""
    audio = row["audio"]
    return Message(
        id=row["id"],
        seq=row["seq"],
        room_id=row["room_id"],
        sender=Sender(kind=row["sender_kind"], id=row["sender_id"]),
        type=row["type"],
        text=row["text"],
        audio=AudioAttachment(**audio) if audio else None,
        signaling_payload=row["signaling_payload"],
        is_delivered=row["is_delivered"],
        is_read=row["is_read"],
        created_at=row["created_at"],
    )


class MessageRepo:
    """All message-related database operations."""

    async def append(
        self,
        room_id: UUID,
        sender: Sender,
        message_type: MessageType,
        *,
        text: str | None = None,
        audio: AudioAttachment | None = None,
        signaling_payload: dict[str, Any] | None = None,
        preview_text: str | None = None,
    ) -> Message:
        """
        Insert a message and, when preview_text is given, refresh the room's
        last-message preview in the same transaction.

        Args:
            room_id: Room UUID
            sender: Who the message is from
            message_type: TEXT, AUDIO or a signaling type
            text: Body for TEXT messages
            audio: Descriptor for AUDIO messages
            signaling_payload: Opaque JSON for signaling messages
            preview_text: Preview to store on the room; None leaves it untouched

        Returns:
            The stored Message
        """
        async with connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO messages (room_id, sender_kind, sender_id, type, text, audio, signaling_payload)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
                """,
                room_id,
                sender.kind,
                sender.id,
                message_type,
                text,
                audio.model_dump() if audio else None,
                signaling_payload,
            )
            message = _row_to_message(row)

            if preview_text is not None:
                await conn.execute(
                    """
                    UPDATE rooms
                    SET last_message_text = $2,
                        last_message_type = $3,
                        last_message_sender_kind = $4,
                        last_message_sender_id = $5,
                        last_message_at = $6,
                        updated_at = now()
                    WHERE id = $1
                    """,
                    room_id,
                    preview_text,
                    message_type,
                    sender.kind,
                    sender.id,
                    message.created_at,
                )

            return message

    @retry_read
    async def get_seq(self, room_id: UUID, message_id: UUID) -> int | None:
        """Ordering key of a message, or None if it is not in this room."""
        async with connection() as conn:
            return await conn.fetchval(
                "SELECT seq FROM messages WHERE id = $1 AND room_id = $2",
                message_id,
                room_id,
            )

    @retry_read
    async def list_for_room(self, room_id: UUID, limit: int, before_seq: int | None = None) -> list[Message]:
        """
        Newest-first page of a room's messages.

        Args:
            room_id: Room UUID
            limit: Page size
            before_seq: Exclusive upper bound on seq; None starts at the newest

        Returns:
            Messages in strictly descending creation order
        """
        async with connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM messages
                WHERE room_id = $1
                  AND ($2::bigint IS NULL OR seq < $2)
                ORDER BY seq DESC
                LIMIT $3
                """,
                room_id,
                before_seq,
                limit,
            )
            return [_row_to_message(row) for row in rows]

    @retry_read
    async def list_audio(
        self,
        room_id: UUID,
        sender_kind: SenderKind | None = None,
        sender_id: UUID | None = None,
    ) -> list[Message]:
        """
        Audio messages of a room, newest first, optionally filtered by sender.

        Args:
            room_id: Room UUID
            sender_kind: Restrict to one side of the conversation
            sender_id: Restrict to one sender (used together with sender_kind)
        """
        async with connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM messages
                WHERE room_id = $1
                  AND type = 'AUDIO'
                  AND ($2::text IS NULL OR sender_kind = $2)
                  AND ($3::uuid IS NULL OR sender_id = $3)
                ORDER BY seq DESC
                """,
                room_id,
                sender_kind,
                sender_id,
            )
            return [_row_to_message(row) for row in rows]
