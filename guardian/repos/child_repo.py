"""Repository for child operations, including linked parents."""

from __future__ import annotations

from typing import Any
from uuid import UUID

import asyncpg

from guardian.db import connection, retry_read
from guardian.errors import Conflict, NotFound
from guardian.models.child import Child, Location
from guardian.models.user import AccountSummary

_UPDATABLE_COLUMNS = frozenset(
    {
        "first_name",
        "last_name",
        "date_of_birth",
        "gender",
        "avatar_url",
        "device_info",
        "is_online",
        "status",
        "additional_attributes",
    }
)

# Children joined with their linked parents, oldest link first.
_SELECT_CHILD = """
    SELECT c.*,
           COALESCE(
               array_agg(l.user_id ORDER BY l.created_at) FILTER (WHERE l.user_id IS NOT NULL),
               '{}'::uuid[]
           ) AS linked_parent_ids
    FROM children c
    LEFT JOIN child_linked_parents l ON l.child_id = c.id
"""


def _row_to_child(row: asyncpg.Record) -> Child:
    """Convert a database row to a Child model."""
    location = None
    if row["location_lat"] is not None and row["location_lng"] is not None:
        location = Location(
            lat=row["location_lat"],
            lng=row["location_lng"],
            updated_at=row["location_updated_at"],
        )
    return Child(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        date_of_birth=row["date_of_birth"],
        gender=row["gender"],
        avatar_url=row["avatar_url"],
        parent_id=row["parent_id"],
        linked_parent_ids=list(row["linked_parent_ids"] or []),
        location=location,
        device_info=row["device_info"] or {},
        is_online=row["is_online"],
        status=row["status"],
        qr_code=row["qr_code"],
        additional_attributes=row["additional_attributes"] or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ChildRepo:
    """All child-related database operations."""

    async def _fetch(self, conn: asyncpg.Connection, child_id: UUID) -> Child | None:
        row = await conn.fetchrow(f"{_SELECT_CHILD} WHERE c.id = $1 GROUP BY c.id", child_id)  # noqa: S608
        return _row_to_child(row) if row else None

    @retry_read
    async def get(self, child_id: UUID) -> Child | None:
        """
        Get a child by ID.

        Args:
            child_id: Child UUID

        Returns:
            Child with linked parents if found, None otherwise
        """
        async with connection() as conn:
            return await self._fetch(conn, child_id)

    @retry_read
    async def get_by_qr_code(self, qr_code: str) -> Child | None:
        async with connection() as conn:
            row = await conn.fetchrow(f"{_SELECT_CHILD} WHERE c.qr_code = $1 GROUP BY c.id", qr_code)  # noqa: S608
            return _row_to_child(row) if row else None

    @retry_read
    async def list_all(self) -> list[Child]:
        async with connection() as conn:
            rows = await conn.fetch(f"{_SELECT_CHILD} GROUP BY c.id ORDER BY c.created_at")  # noqa: S608
            return [_row_to_child(row) for row in rows]

    @retry_read
    async def list_for_parent(self, parent_id: UUID) -> list[Child]:
        """
        List children where the user is main parent or a linked parent.

        Args:
            parent_id: User UUID

        Returns:
            Children ordered by creation time
        """
        async with connection() as conn:
            rows = await conn.fetch(
                f"""
                {_SELECT_CHILD}
                WHERE c.parent_id = $1
                   OR EXISTS (
                       SELECT 1 FROM child_linked_parents x
                       WHERE x.child_id = c.id AND x.user_id = $1
                   )
                GROUP BY c.id
                ORDER BY c.created_at
                """,  # noqa: S608
                parent_id,
            )
            return [_row_to_child(row) for row in rows]

    @retry_read
    async def get_summaries(self, child_ids: list[UUID]) -> dict[UUID, AccountSummary]:
        if not child_ids:
            return {}
        async with connection() as conn:
            rows = await conn.fetch(
                "SELECT id, first_name, last_name, avatar_url FROM children WHERE id = ANY($1::uuid[])",
                list(set(child_ids)),
            )
            return {row["id"]: AccountSummary(**dict(row)) for row in rows}

    async def create(self, parent_id: UUID, qr_code: str, fields: dict[str, Any]) -> Child:
        """
        Create a child owned by `parent_id`.

        Args:
            parent_id: Main parent's user UUID
            qr_code: Unique login code
            fields: Remaining child columns (names, birth date, etc.)

        Raises:
            Conflict: If the QR code is already in use
        """
        try:
            async with connection() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO children (
                        parent_id, first_name, last_name, date_of_birth, gender,
                        avatar_url, device_info, status, qr_code, additional_attributes
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                    RETURNING id
                    """,
                    parent_id,
                    fields["first_name"],
                    fields["last_name"],
                    fields.get("date_of_birth"),
                    fields.get("gender"),
                    fields.get("avatar_url"),
                    fields.get("device_info") or {},
                    fields.get("status", "ACTIVE"),
                    qr_code,
                    fields.get("additional_attributes") or {},
                )
                child = await self._fetch(conn, row["id"])
                if child is None:
                    raise NotFound("Child not found.")
                return child
        except asyncpg.UniqueViolationError as e:
            raise Conflict("QR code is already in use.") from e

    async def update(self, child_id: UUID, fields: dict[str, Any]) -> Child | None:
        """
        Partially update a child. Only the given fields are written.

        Returns:
            Updated Child, or None if it does not exist
        """
        updates = {k: v for k, v in fields.items() if k in _UPDATABLE_COLUMNS}
        if not updates:
            return await self.get(child_id)

        set_clause = ", ".join(f"{k} = ${i + 2}" for i, k in enumerate(updates))
        values = list(updates.values())

        async with connection() as conn:
            # S608: set_clause only contains whitelisted column names
            result = await conn.execute(
                f"UPDATE children SET {set_clause}, updated_at = now() WHERE id = $1",  # noqa: S608
                child_id,
                *values,
            )
            if result != "UPDATE 1":
                return None
            return await self._fetch(conn, child_id)

    async def update_location(self, child_id: UUID, lat: float, lng: float) -> Child | None:
        async with connection() as conn:
            result = await conn.execute(
                """
                UPDATE children
                SET location_lat = $2, location_lng = $3,
                    location_updated_at = now(), updated_at = now()
                WHERE id = $1
                """,
                child_id,
                lat,
                lng,
            )
            if result != "UPDATE 1":
                return None
            return await self._fetch(conn, child_id)

    async def delete(self, child_id: UUID) -> bool:
        """
        Delete a child. Its room and messages are removed by cascade.

        Returns:
            True if deleted, False if not found
        """
        async with connection() as conn:
            result = await conn.execute("DELETE FROM children WHERE id = $1", child_id)
            return result == "DELETE 1"

    async def add_linked_parent(self, child_id: UUID, user_id: UUID) -> bool:
        """
        Link a secondary parent. Add-if-absent in a single statement.

        Returns:
            True if the link was added, False if it already existed
        """
        async with connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO child_linked_parents (child_id, user_id)
                VALUES ($1, $2)
                ON CONFLICT DO NOTHING
                RETURNING user_id
                """,
                child_id,
                user_id,
            )
            return row is not None

    async def remove_linked_parent(self, child_id: UUID, user_id: UUID) -> bool:
        """Unlink a secondary parent. Returns False if it was not linked."""
        async with connection() as conn:
            result = await conn.execute(
                "DELETE FROM child_linked_parents WHERE child_id = $1 AND user_id = $2",
                child_id,
                user_id,
            )
            return result == "DELETE 1"
