"""Authentication request/response models."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, EmailStr, Field, model_validator

from guardian.models.base import ApiModel
from guardian.models.child import ChildResponse
from guardian.models.user import CodeChannel, UserPublic


class RegisterRequest(ApiModel):
    """Self-service registration. Admin accounts are never created this way."""

    model_config = ConfigDict(extra="forbid")

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone_number: str | None = Field(default=None, max_length=32)
    password: str = Field(min_length=6, max_length=128)
    verification_channel: CodeChannel = "email"
    additional_attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _sms_needs_phone(self) -> RegisterRequest:
        if self.verification_channel == "sms" and not self.phone_number:
            raise ValueError("phoneNumber is required when verificationChannel is sms")
        return self


class LoginRequest(ApiModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class GoogleLoginRequest(ApiModel):
    model_config = ConfigDict(extra="forbid")

    id_token: str = Field(min_length=1)


class QrLoginRequest(ApiModel):
    model_config = ConfigDict(extra="forbid")

    qr_code: str = Field(min_length=1, max_length=128)


class _AccountIdentifier(ApiModel):
    """Either an email or a phone number identifies the account."""

    email: EmailStr | None = None
    phone_number: str | None = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def _needs_identifier(self) -> _AccountIdentifier:
        if not self.email and not self.phone_number:
            raise ValueError("email or phoneNumber is required")
        return self


class VerifyAccountRequest(_AccountIdentifier):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(min_length=1, max_length=12)


class ResendCodeRequest(_AccountIdentifier):
    model_config = ConfigDict(extra="forbid")

    channel: CodeChannel | None = None


class ForgotPasswordRequest(_AccountIdentifier):
    model_config = ConfigDict(extra="forbid")

    channel: CodeChannel = "email"


class ResetPasswordRequest(_AccountIdentifier):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(min_length=1, max_length=12)
    new_password: str = Field(min_length=6, max_length=128)


class StatusResponse(ApiModel):
    message: str


class RegisterResponse(ApiModel):
    user: UserPublic
    message: str = "Registration successful. Verification code sent."


class AuthResponse(ApiModel):
    """Returned by every flow that issues a user session token."""

    access_token: str
    token_type: str = "bearer"
    user: UserPublic
    message: str | None = None


class ChildAuthResponse(ApiModel):
    access_token: str
    token_type: str = "bearer"
    child: ChildResponse
