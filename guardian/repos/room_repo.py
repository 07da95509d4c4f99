"""Repository for rooms and their invited parents."""

from __future__ import annotations

from uuid import UUID

import asyncpg

from guardian.db import connection, retry_read
from guardian.errors import Conflict, NotFound
from guardian.models.message import Sender
from guardian.models.room import LastMessage, Room

# Rooms joined with their invited parents, oldest invite first.
_SELECT_ROOM = """
    SELECT r.*,
           COALESCE(
               array_agg(i.user_id ORDER BY i.created_at) FILTER (WHERE i.user_id IS NOT NULL),
               '{}'::uuid[]
           ) AS invited_parent_ids
    FROM rooms r
    LEFT JOIN room_invited_parents i ON i.room_id = r.id
"""


def _row_to_room(row: asyncpg.Record) -> Room:
    """Convert a database row to a Room model."""
    last_message = None
    if row["last_message_at"] is not None:
        last_message = LastMessage(
            text=row["last_message_text"],
            type=row["last_message_type"],
            sender=Sender(kind=row["last_message_sender_kind"], id=row["last_message_sender_id"]),
            created_at=row["last_message_at"],
        )
    return Room(
        id=row["id"],
        parent_id=row["parent_id"],
        child_id=row["child_id"],
        invited_parent_ids=list(row["invited_parent_ids"] or []),
        is_active=row["is_active"],
        last_message=last_message,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class RoomRepo:
    """All room-related database operations."""

    async def _fetch(self, conn: asyncpg.Connection, room_id: UUID) -> Room | None:
        row = await conn.fetchrow(f"{_SELECT_ROOM} WHERE r.id = $1 GROUP BY r.id", room_id)  # noqa: S608
        return _row_to_room(row) if row else None

    @retry_read
    async def get(self, room_id: UUID) -> Room | None:
        """
        Get a room by ID.

        Args:
            room_id: Room UUID

        Returns:
            Room with invited parents if found, None otherwise
        """
        async with connection() as conn:
            return await self._fetch(conn, room_id)

    @retry_read
    async def get_for_child(self, child_id: UUID, active_only: bool = True) -> Room | None:
        async with connection() as conn:
            row = await conn.fetchrow(
                f"""
                {_SELECT_ROOM}
                WHERE r.child_id = $1 AND (r.is_active OR NOT $2)
                GROUP BY r.id
                """,  # noqa: S608
                child_id,
                active_only,
            )
            return _row_to_room(row) if row else None

    async def get_or_create(self, parent_id: UUID, child_id: UUID) -> tuple[Room, bool]:
        """
        Find or insert the room for a (parent, child) pair atomically.

        The insert is conditional on the unique constraints; a concurrent
        creator makes ours a no-op, after which the existing row is re-read
        (and reactivated if it had been deactivated).

        Args:
            parent_id: Main parent UUID
            child_id: Child UUID

        Returns:
            (room, created) where created is True only for the inserting call
        """
        async with connection() as conn:
            try:
                row = await conn.fetchrow(
                    """
                    INSERT INTO rooms (parent_id, child_id, is_active)
                    VALUES ($1, $2, true)
                    ON CONFLICT DO NOTHING
                    RETURNING id
                    """,
                    parent_id,
                    child_id,
                )
            except asyncpg.ForeignKeyViolationError as e:
                raise NotFound("Child not found.") from e
            created = row is not None
            if not created:
                row = await conn.fetchrow(
                    """
                    UPDATE rooms
                    SET is_active = true,
                        updated_at = CASE WHEN is_active THEN updated_at ELSE now() END
                    WHERE child_id = $1
                    RETURNING id
                    """,
                    child_id,
                )
                if row is None:
                    # The conflicting row vanished (child deleted mid-flight).
                    raise Conflict("Room could not be created. Please try again.")

            room = await self._fetch(conn, row["id"])
            if room is None:
                raise Conflict("Room could not be created. Please try again.")
            return room, created

    @retry_read
    async def list_for_parent(self, parent_id: UUID) -> list[Room]:
        """
        List active rooms where the user is main parent or invited parent.

        Returns:
            Rooms by newest message first; rooms never messaged come last,
            newest room first.
        """
        async with connection() as conn:
            rows = await conn.fetch(
                f"""
                {_SELECT_ROOM}
                WHERE r.is_active
                  AND (
                      r.parent_id = $1
                      OR EXISTS (
                          SELECT 1 FROM room_invited_parents x
                          WHERE x.room_id = r.id AND x.user_id = $1
                      )
                  )
                GROUP BY r.id
                ORDER BY r.last_message_at DESC NULLS LAST, r.created_at DESC
                """,  # noqa: S608
                parent_id,
            )
            return [_row_to_room(row) for row in rows]

    async def add_invited_parent(self, room_id: UUID, user_id: UUID) -> bool:
        """
        Add an invited parent. Add-if-absent in a single statement.

        Returns:
            True if added, False if the user was already invited
        """
        async with connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO room_invited_parents (room_id, user_id)
                VALUES ($1, $2)
                ON CONFLICT DO NOTHING
                RETURNING user_id
                """,
                room_id,
                user_id,
            )
            return row is not None

    async def remove_invited_parent(self, room_id: UUID, user_id: UUID) -> bool:
        """
        Remove an invited parent. Remove-if-present in a single statement.

        Returns:
            True if removed, False if the user was not invited
        """
        async with connection() as conn:
            result = await conn.execute(
                "DELETE FROM room_invited_parents WHERE room_id = $1 AND user_id = $2",
                room_id,
                user_id,
            )
            return result == "DELETE 1"
