"""Authentication routes: registration, sign-in, codes, password reset."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from guardian.middleware.rate_limit import limit_by_ip
from guardian.models.auth import (
    AuthResponse,
    ChildAuthResponse,
    ForgotPasswordRequest,
    GoogleLoginRequest,
    LoginRequest,
    QrLoginRequest,
    RegisterRequest,
    RegisterResponse,
    ResendCodeRequest,
    ResetPasswordRequest,
    StatusResponse,
    VerifyAccountRequest,
)
from guardian.models.child import ChildResponse
from guardian.models.user import UserPublic
from guardian.services.identity import identity_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201, dependencies=[Depends(limit_by_ip("register"))])
async def register(req: RegisterRequest) -> RegisterResponse:
    """Create a PARENT account and send its verification code."""
    user = await identity_service.register(req)
    return RegisterResponse(user=UserPublic.from_user(user))


@router.post("/login", status_code=200, dependencies=[Depends(limit_by_ip("login"))])
async def login(req: LoginRequest) -> AuthResponse:
    grant = await identity_service.login(req)
    return AuthResponse(access_token=grant.access_token, user=UserPublic.from_user(grant.user))


@router.post("/login/google", status_code=200, dependencies=[Depends(limit_by_ip("login"))])
async def login_google(req: GoogleLoginRequest) -> AuthResponse:
    """Sign in with a Google ID token, creating the account on first use."""
    grant = await identity_service.login_with_google(req.id_token)
    return AuthResponse(access_token=grant.access_token, user=UserPublic.from_user(grant.user))


@router.post("/login/qr", status_code=200, dependencies=[Depends(limit_by_ip("login"))])
async def login_qr(req: QrLoginRequest) -> ChildAuthResponse:
    """Child sign-in with the QR code issued when the child was created."""
    grant = await identity_service.login_with_qr(req.qr_code)
    child = ChildResponse.from_model(grant.child, {})
    return ChildAuthResponse(access_token=grant.access_token, child=child)


@router.post("/verify", status_code=200, dependencies=[Depends(limit_by_ip("verify"))])
async def verify(req: VerifyAccountRequest) -> AuthResponse:
    grant = await identity_service.verify_account(req)
    return AuthResponse(
        access_token=grant.access_token,
        user=UserPublic.from_user(grant.user),
        message="Account verified.",
    )


@router.post("/resend-code", status_code=200, dependencies=[Depends(limit_by_ip("codes"))])
async def resend_code(req: ResendCodeRequest) -> StatusResponse:
    message = await identity_service.resend_code(req)
    return StatusResponse(message=message)


@router.post("/forgot-password", status_code=200, dependencies=[Depends(limit_by_ip("codes"))])
async def forgot_password(req: ForgotPasswordRequest) -> StatusResponse:
    """Always answers the same way, whether or not the account exists."""
    message = await identity_service.forgot_password(req)
    return StatusResponse(message=message)


@router.post("/reset-password", status_code=200, dependencies=[Depends(limit_by_ip("verify"))])
async def reset_password(req: ResetPasswordRequest) -> StatusResponse:
    message = await identity_service.reset_password(req)
    return StatusResponse(message=message)
