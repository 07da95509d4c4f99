"""Repository for user (parent and admin) operations."""

from __future__ import annotations

from typing import Any
from uuid import UUID

import asyncpg

from guardian.db import connection, retry_read
from guardian.errors import Conflict
from guardian.models.user import AccountSummary, User

# Columns a partial update may touch. Anything else is ignored.
_UPDATABLE_COLUMNS = frozenset(
    {
        "first_name",
        "last_name",
        "email",
        "phone_number",
        "password_hash",
        "role",
        "status",
        "avatar_url",
        "is_verified",
        "verification_code",
        "verification_code_expires_at",
        "verification_channel",
        "password_reset_code",
        "password_reset_expires_at",
        "last_code_sent_at",
        "google_id",
        "additional_attributes",
    }
)


def _row_to_user(row: asyncpg.Record) -> User:
    """Convert a database row to a User model."""
    return User(**dict(row))


class UserRepo:
    """All user-related database operations."""

    @retry_read
    async def get(self, user_id: UUID) -> User | None:
        """
        Get a user by ID.

        Args:
            user_id: User UUID

        Returns:
            User if found, None otherwise
        """
        async with connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
            return _row_to_user(row) if row else None

    @retry_read
    async def get_by_email(self, email: str) -> User | None:
        """Get a user by email address, case-insensitively."""
        async with connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE lower(email) = lower($1)", email)
            return _row_to_user(row) if row else None

    @retry_read
    async def get_by_phone(self, phone_number: str) -> User | None:
        async with connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM users WHERE phone_number = $1 ORDER BY created_at LIMIT 1",
                phone_number,
            )
            return _row_to_user(row) if row else None

    async def find_by_email_or_phone(self, email: str | None, phone_number: str | None) -> User | None:
        """
        Look up the account a verification or reset flow refers to.
        Email wins when both are given.
        """
        if email:
            return await self.get_by_email(email)
        if phone_number:
            return await self.get_by_phone(phone_number)
        return None

    @retry_read
    async def list_all(self) -> list[User]:
        async with connection() as conn:
            rows = await conn.fetch("SELECT * FROM users ORDER BY created_at")
            return [_row_to_user(row) for row in rows]

    @retry_read
    async def get_summaries(self, user_ids: list[UUID]) -> dict[UUID, AccountSummary]:
        """
        Resolve user ids to name/avatar summaries.

        Args:
            user_ids: Ids to resolve; unknown ids are skipped

        Returns:
            Mapping of id to AccountSummary
        """
        if not user_ids:
            return {}
        async with connection() as conn:
            rows = await conn.fetch(
                "SELECT id, first_name, last_name, avatar_url FROM users WHERE id = ANY($1::uuid[])",
                list(set(user_ids)),
            )
            return {row["id"]: AccountSummary(**dict(row)) for row in rows}

    async def create(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        password_hash: str,
        phone_number: str | None = None,
        role: str = "PARENT",
        status: str = "ACTIVE",
        avatar_url: str | None = None,
        is_verified: bool = False,
        google_id: str | None = None,
        additional_attributes: dict[str, Any] | None = None,
    ) -> User:
        """
        Create a new user.

        Raises:
            Conflict: If the email is already registered
        """
        try:
            async with connection() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO users (
                        first_name, last_name, email, phone_number, password_hash,
                        role, status, avatar_url, is_verified, google_id, additional_attributes
                    )
                    VALUES ($1, $2, lower($3), $4, $5, $6, $7, $8, $9, $10, $11)
                    RETURNING *
                    """,
                    first_name,
                    last_name,
                    email,
                    phone_number,
                    password_hash,
                    role,
                    status,
                    avatar_url,
                    is_verified,
                    google_id,
                    additional_attributes or {},
                )
                return _row_to_user(row)
        except asyncpg.UniqueViolationError as e:
            raise Conflict("User with this email already exists.") from e

    async def update(self, user_id: UUID, fields: dict[str, Any]) -> User | None:
        """
        Partially update a user. Only the given fields are written.

        Args:
            user_id: User UUID
            fields: Column -> new value; unknown columns are dropped

        Returns:
            Updated User, or None if the user does not exist

        Raises:
            Conflict: If the new email is taken
        """
        updates = {k: v for k, v in fields.items() if k in _UPDATABLE_COLUMNS}
        if "email" in updates and updates["email"]:
            updates["email"] = updates["email"].lower()
        if not updates:
            return await self.get(user_id)

        set_clause = ", ".join(f"{k} = ${i + 2}" for i, k in enumerate(updates))
        values = list(updates.values())

        try:
            async with connection() as conn:
                # S608: set_clause only contains whitelisted column names
                row = await conn.fetchrow(
                    f"UPDATE users SET {set_clause}, updated_at = now() WHERE id = $1 RETURNING *",  # noqa: S608
                    user_id,
                    *values,
                )
                return _row_to_user(row) if row else None
        except asyncpg.UniqueViolationError as e:
            raise Conflict("User with this email already exists.") from e

    async def delete(self, user_id: UUID) -> bool:
        """
        Delete a user. Linked and invited memberships go with it.

        Returns:
            True if deleted, False if not found

        Raises:
            Conflict: If the user is still the main parent of a child
        """
        try:
            async with connection() as conn:
                result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)
                return result == "DELETE 1"
        except asyncpg.ForeignKeyViolationError as e:
            raise Conflict("User is still the main parent of one or more children.") from e
