"""
Authentication for Guardian.

Password hashing, JWT issuance, and resolving a bearer token to an Actor.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any
from uuid import UUID

import jwt
from fastapi import Header
from passlib.context import CryptContext

from guardian import config
from guardian.errors import Unauthorized
from guardian.models.actor import Actor, ActorType
from guardian.repos.child_repo import ChildRepo
from guardian.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)

user_repo = UserRepo()
child_repo = ChildRepo()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """Check a password against a stored hash. A missing hash never matches."""
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognized hash format
        return False


def create_jwt(
    subject: UUID,
    actor_type: ActorType = "user",
    role: str | None = None,
    email: str | None = None,
) -> str:
    """
    Create a JWT for a user or child session.

    Args:
        subject: Account UUID to encode in the token
        actor_type: "user" or "child"
        role: User role (users only)
        email: User email (users only)

    Returns:
        Signed JWT string
    """
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(subject),
        "type": actor_type,
        "exp": now + timedelta(hours=config.settings.JWT_EXPIRY_HOURS),
        "iat": now,
    }
    if role is not None:
        payload["role"] = role
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, config.settings.JWT_SECRET, algorithm=config.settings.JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """
    Decode and verify a JWT.

    Raises:
        Unauthorized: If token is invalid or expired
    """
    try:
        return jwt.decode(token, config.settings.JWT_SECRET, algorithms=[config.settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise Unauthorized("Session expired. Please sign in again.") from e
    except jwt.InvalidTokenError as e:
        raise Unauthorized("Invalid session token. Please sign in again.") from e


async def resolve_actor(token: str) -> Actor:
    """
    Turn a bearer token into the Actor performing the request.

    The account must still exist and be ACTIVE; a token outliving its
    account is rejected. Child actors carry their main parent's id.

    Args:
        token: Raw JWT (without the "Bearer " prefix)

    Returns:
        Authenticated Actor

    Raises:
        Unauthorized: If the token or the account it names is not valid
    """
    payload = decode_jwt(token)
    try:
        subject = UUID(payload.get("sub") or "")
    except ValueError as e:
        raise Unauthorized("Invalid session token. Please sign in again.") from e

    actor_type = payload.get("type", "user")
    if actor_type == "child":
        child = await child_repo.get(subject)
        if child is None or child.status != "ACTIVE":
            raise Unauthorized("Child account not found or inactive.")
        return Actor(id=child.id, type="child", parent_id=child.parent_id)

    if actor_type != "user":
        raise Unauthorized("Invalid session token. Please sign in again.")

    user = await user_repo.get(subject)
    if user is None or user.status != "ACTIVE":
        raise Unauthorized("User not found or inactive.")
    return Actor(id=user.id, type="user", role=user.role)


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_actor(
    authorization: Annotated[str | None, Header()] = None,
) -> Actor:
    """
    FastAPI dependency to get the current authenticated actor.

    Raises:
        Unauthorized: If the header is missing or the token is rejected
    """
    token = bearer_token(authorization)
    if token is None:
        raise Unauthorized()
    return await resolve_actor(token)
