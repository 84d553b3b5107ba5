"""
Heimursaga API — Auth Routes
==============================

Web clients use an httpOnly `sid` cookie; mobile clients use the
`/auth/mobile/*` JWT pair and send `Authorization: Bearer <access>`.

Signup, login and password reset are behind the bot detection guard and,
when RECAPTCHA_SECRET_KEY is set, a reCAPTCHA check.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_client_ip, get_db, get_session_user
from saga.middleware.bot_detection import bot_guard
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    PasswordResetRequest,
    RefreshRequest,
    SessionResponse,
    SignupRequest,
    TokenPairResponse,
    TokenRequest,
    TokenValidationResponse,
)
from saga.schemas.common import SuccessResponse
from saga.services.auth_service import auth_service, to_session_user
from saga.services.recaptcha_service import recaptcha_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.api_prefix}/auth", tags=["Auth"])


def _set_session_cookie(response: Response, sid: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=sid,
        max_age=settings.session_max_age_hours * 3600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        domain=settings.session_cookie_domain or None,
        path="/",
    )


@router.post(
    "/signup",
    status_code=201,
    response_model=SuccessResponse,
    dependencies=[Depends(bot_guard)],
    responses=error_responses(400, 403),
    summary="Create an account",
)
async def signup(
    payload: SignupRequest, request: Request, db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await recaptcha_service.require(payload.recaptcha_token, get_client_ip(request))
    await auth_service.signup(db, payload)
    return SuccessResponse()


@router.post(
    "/login",
    response_model=SessionResponse,
    dependencies=[Depends(bot_guard)],
    responses=error_responses(400, 403),
    summary="Sign in with email or username",
)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    ip = get_client_ip(request)
    await recaptcha_service.require(payload.recaptcha_token, ip)
    sid, user = await auth_service.login(
        db, payload.login, payload.password, ip_address=ip,
        user_agent=request.headers.get("user-agent"),
    )
    _set_session_cookie(response, sid)
    return SessionResponse(user=to_session_user(user))


@router.post("/logout", response_model=SuccessResponse, summary="Sign out")
async def logout(
    request: Request, response: Response, db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await auth_service.logout(db, request.cookies.get(settings.session_cookie_name))
    response.delete_cookie(
        settings.session_cookie_name, path="/", domain=settings.session_cookie_domain or None
    )
    return SuccessResponse()


@router.get(
    "/session",
    response_model=SessionResponse,
    responses=error_responses(401),
    summary="Current session user",
)
async def get_session(user: User = Depends(get_session_user)) -> SessionResponse:
    return SessionResponse(user=to_session_user(user))


@router.post(
    "/reset-password",
    response_model=SuccessResponse,
    dependencies=[Depends(bot_guard)],
    summary="Email a password reset link",
    description="Always succeeds so the response does not reveal whether the email exists.",
)
async def reset_password(
    payload: PasswordResetRequest, request: Request, db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await recaptcha_service.require(payload.recaptcha_token, get_client_ip(request))
    await auth_service.reset_password(db, payload.email)
    return SuccessResponse()


@router.post("/validate-token", response_model=TokenValidationResponse, summary="Check a reset token")
async def validate_token(
    payload: TokenRequest, db: AsyncSession = Depends(get_db)
) -> TokenValidationResponse:
    return TokenValidationResponse(valid=await auth_service.validate_token(db, payload.token))


@router.post(
    "/change-password",
    response_model=SuccessResponse,
    responses=error_responses(400),
    summary="Set a new password with a reset token",
)
async def change_password(
    payload: ChangePasswordRequest, db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await auth_service.change_password(db, payload.token, payload.password)
    return SuccessResponse()


@router.post(
    "/send-verification",
    response_model=SuccessResponse,
    responses=error_responses(400, 401),
    summary="Resend the email verification link",
)
async def send_verification(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await auth_service.send_email_verification(db, user)
    return SuccessResponse()


@router.post(
    "/verify-email",
    response_model=SuccessResponse,
    responses=error_responses(400),
    summary="Confirm an email address",
)
async def verify_email(payload: TokenRequest, db: AsyncSession = Depends(get_db)) -> SuccessResponse:
    await auth_service.verify_email(db, payload.token)
    return SuccessResponse()


# ── Mobile (JWT) ──────────────────────────────────────────────────────────


@router.post(
    "/mobile/login",
    response_model=TokenPairResponse,
    responses=error_responses(400),
    summary="Sign in and receive an access/refresh token pair",
)
async def mobile_login(payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> TokenPairResponse:
    return await auth_service.login_mobile(db, payload.login, payload.password)


@router.post(
    "/mobile/refresh",
    response_model=TokenPairResponse,
    responses=error_responses(401),
    summary="Exchange a refresh token for a new pair",
)
async def mobile_refresh(payload: RefreshRequest, db: AsyncSession = Depends(get_db)) -> TokenPairResponse:
    return await auth_service.refresh(db, payload.refresh_token)
