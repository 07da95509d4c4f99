"""
Identity flows: registration, sign-in, verification codes, password reset.

Codes are numeric, short-lived, and delivered through a Notifier chosen by
channel. Nothing here reveals whether an email is registered except
registration itself, which must report duplicates.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from guardian import config
from guardian.auth import create_jwt, hash_password, verify_password
from guardian.errors import Conflict, InvalidInput, NotFound, TooManyRequests, Unauthorized
from guardian.models.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResendCodeRequest,
    ResetPasswordRequest,
    VerifyAccountRequest,
)
from guardian.models.child import Child
from guardian.models.user import CodeChannel, User
from guardian.repos.child_repo import ChildRepo
from guardian.repos.user_repo import UserRepo
from guardian.services.email import email_notifier
from guardian.services.notifier import CodePurpose, Notifier
from guardian.services.oauth import GoogleTokenVerifier, google_verifier
from guardian.services.sms import sms_notifier

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists, a password reset code has been sent."


def generate_code(length: int | None = None) -> str:
    """Zero-padded numeric code from a CSPRNG."""
    length = length or config.settings.VERIFICATION_CODE_LENGTH
    return str(secrets.randbelow(10**length)).zfill(length)


def _code_expiry() -> datetime:
    return datetime.now(UTC) + timedelta(minutes=config.settings.VERIFICATION_CODE_TTL_MINUTES)


def _check_code(submitted: str, expected: str | None, expires_at: datetime | None, what: str) -> None:
    """
    Raises:
        InvalidInput: If no code is outstanding or it has expired
        Unauthorized: If the code does not match
    """
    if not expected or expires_at is None:
        raise InvalidInput(f"No {what} in progress.")
    if expires_at < datetime.now(UTC):
        raise InvalidInput(f"The {what} code has expired. Please request a new one.")
    if not secrets.compare_digest(submitted.strip(), expected):
        raise Unauthorized(f"Invalid {what} code.")


@dataclass
class SessionGrant:
    """A freshly issued token and the account it belongs to."""

    access_token: str
    user: User


@dataclass
class ChildSessionGrant:
    access_token: str
    child: Child


class IdentityService:
    def __init__(
        self,
        users: UserRepo | None = None,
        children: ChildRepo | None = None,
        notifiers: dict[str, Notifier] | None = None,
        google: GoogleTokenVerifier | None = None,
    ) -> None:
        self.users = users or UserRepo()
        self.children = children or ChildRepo()
        self.notifiers = notifiers or {"email": email_notifier, "sms": sms_notifier}
        self.google = google or google_verifier

    def _session(self, user: User) -> SessionGrant:
        return SessionGrant(
            access_token=create_jwt(user.id, "user", role=user.role, email=user.email),
            user=user,
        )

    async def _deliver(self, user: User, channel: CodeChannel, code: str, purpose: CodePurpose) -> bool:
        recipient = user.phone_number if channel == "sms" else user.email
        if not recipient:
            logger.warning("identity: user %s has no %s address, code not sent", user.id, channel)
            return False
        return await self.notifiers[channel].send_code(recipient, code, purpose)

    async def _lookup(self, email: str | None, phone_number: str | None) -> User:
        user = await self.users.find_by_email_or_phone(email, phone_number)
        if user is None:
            raise NotFound("User not found.")
        return user

    def _check_cooldown(self, user: User) -> None:
        if user.last_code_sent_at is None:
            return
        ready_at = user.last_code_sent_at + timedelta(seconds=config.settings.CODE_RESEND_COOLDOWN_SECONDS)
        remaining = (ready_at - datetime.now(UTC)).total_seconds()
        if remaining > 0:
            raise TooManyRequests(f"Please wait {int(remaining) + 1} seconds before requesting another code.")

    async def register(self, request: RegisterRequest) -> User:
        """
        Create an unverified PARENT account and send its verification code.

        Raises:
            Conflict: If the email is already registered
        """
        if await self.users.get_by_email(request.email) is not None:
            raise Conflict("User with this email already exists.")

        user = await self.users.create(
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            password_hash=hash_password(request.password),
            phone_number=request.phone_number,
            role="PARENT",
            additional_attributes=request.additional_attributes,
        )

        code = generate_code()
        user = await self.users.update(
            user.id,
            {
                "verification_code": code,
                "verification_code_expires_at": _code_expiry(),
                "verification_channel": request.verification_channel,
                "last_code_sent_at": datetime.now(UTC),
            },
        ) or user
        await self._deliver(user, request.verification_channel, code, "verification")

        logger.info("identity: registered user %s", user.id)
        return user

    async def login(self, request: LoginRequest) -> SessionGrant:
        """
        Password sign-in. Unverified accounts may sign in; inactive ones may not.

        Raises:
            Unauthorized: On unknown email, wrong password, or inactive account
        """
        user = await self.users.get_by_email(request.email)
        if user is None or not verify_password(request.password, user.password_hash):
            logger.info("identity: failed login for %s", request.email)
            raise Unauthorized("Invalid email or password.")
        if user.status != "ACTIVE":
            raise Unauthorized("Account is not active.")
        return self._session(user)

    async def login_with_qr(self, qr_code: str) -> ChildSessionGrant:
        """Child sign-in with the code printed on the parent's screen."""
        child = await self.children.get_by_qr_code(qr_code.strip())
        if child is None:
            raise Unauthorized("Invalid QR code.")
        if child.status != "ACTIVE":
            raise Unauthorized("Child account is not active.")
        return ChildSessionGrant(access_token=create_jwt(child.id, "child"), child=child)

    async def login_with_google(self, id_token: str) -> SessionGrant:
        """
        Sign in with a Google ID token.

        First sign-in creates a verified PARENT account. An existing account
        with the same email is linked to the Google identity.
        """
        identity = await self.google.verify(id_token)
        user = await self.users.get_by_email(identity.email)

        if user is None:
            user = await self.users.create(
                first_name=identity.first_name,
                last_name=identity.last_name,
                email=identity.email,
                # Unusable password; the account signs in through Google.
                password_hash=hash_password(secrets.token_urlsafe(32)),
                role="PARENT",
                avatar_url=identity.picture,
                is_verified=True,
                google_id=identity.subject,
            )
            logger.info("identity: created user %s from Google sign-in", user.id)
            return self._session(user)

        if user.status != "ACTIVE":
            raise Unauthorized("Account is not active.")
        if user.google_id and user.google_id != identity.subject:
            raise Unauthorized("This email is linked to a different Google account.")

        if not user.google_id or not user.is_verified:
            fields: dict = {"google_id": identity.subject, "is_verified": True}
            if not user.avatar_url and identity.picture:
                fields["avatar_url"] = identity.picture
            user = await self.users.update(user.id, fields) or user
            logger.info("identity: linked Google identity to user %s", user.id)

        return self._session(user)

    async def verify_account(self, request: VerifyAccountRequest) -> SessionGrant:
        """
        Confirm a verification code and sign the user in.

        Raises:
            NotFound: If no account matches
            InvalidInput: If no code is outstanding or it has expired
            Unauthorized: If the code is wrong
        """
        user = await self._lookup(request.email, request.phone_number)
        if user.is_verified:
            raise InvalidInput("No verification in progress.")

        _check_code(request.code, user.verification_code, user.verification_code_expires_at, "verification")

        user = await self.users.update(
            user.id,
            {
                "is_verified": True,
                "verification_code": None,
                "verification_code_expires_at": None,
            },
        ) or user
        logger.info("identity: verified user %s", user.id)
        return self._session(user)

    async def resend_code(self, request: ResendCodeRequest) -> str:
        """
        Issue a fresh verification code.

        Returns:
            Message for the client

        Raises:
            TooManyRequests: If the previous code was sent within the cooldown
            InvalidInput: If sms is requested for an account without a phone
        """
        user = await self._lookup(request.email, request.phone_number)
        if user.is_verified:
            return "Account is already verified."
        self._check_cooldown(user)

        channel: CodeChannel = request.channel or user.verification_channel or "email"
        if channel == "sms" and not user.phone_number:
            raise InvalidInput("No phone number on file for SMS delivery.")

        code = generate_code()
        await self.users.update(
            user.id,
            {
                "verification_code": code,
                "verification_code_expires_at": _code_expiry(),
                "verification_channel": channel,
                "last_code_sent_at": datetime.now(UTC),
            },
        )
        await self._deliver(user, channel, code, "verification")
        return "Verification code sent."

    async def forgot_password(self, request: ForgotPasswordRequest) -> str:
        """
        Start a password reset. The response is identical whether or not
        the account exists.
        """
        user = await self.users.find_by_email_or_phone(request.email, request.phone_number)
        if user is None or user.status != "ACTIVE":
            return FORGOT_PASSWORD_MESSAGE

        try:
            self._check_cooldown(user)
        except TooManyRequests:
            logger.info("identity: reset code for user %s throttled", user.id)
            return FORGOT_PASSWORD_MESSAGE

        channel: CodeChannel = request.channel
        if channel == "sms" and not user.phone_number:
            channel = "email"

        code = generate_code()
        await self.users.update(
            user.id,
            {
                "password_reset_code": code,
                "password_reset_expires_at": _code_expiry(),
                "last_code_sent_at": datetime.now(UTC),
            },
        )
        await self._deliver(user, channel, code, "password_reset")
        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, request: ResetPasswordRequest) -> str:
        """
        Replace the password using a reset code.

        Raises:
            InvalidInput: If no reset is outstanding or the code has expired
            Unauthorized: If the code is wrong
        """
        user = await self.users.find_by_email_or_phone(request.email, request.phone_number)
        if user is None:
            raise InvalidInput("No password reset in progress.")

        _check_code(request.code, user.password_reset_code, user.password_reset_expires_at, "password reset")

        await self.users.update(
            user.id,
            {
                "password_hash": hash_password(request.new_password),
                "password_reset_code": None,
                "password_reset_expires_at": None,
            },
        )
        logger.info("identity: password reset for user %s", user.id)
        return "Password has been reset. You can now sign in."


identity_service = IdentityService()
