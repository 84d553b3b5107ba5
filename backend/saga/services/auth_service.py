"""
Heimursaga API — Auth Service
===============================

What:  Signup, cookie-session login/logout, password reset, email
       verification and JWT token pairs for the mobile app.
How:   Sessions are opaque `sid` values backed by `user_sessions` rows.
       Mobile clients get short-lived access JWTs plus refresh JWTs (PyJWT,
       HS256). Emails are sent through SEND_EMAIL events.
Who:   Auth routes and `saga.dependencies`.

Login and reset responses never reveal whether an account exists.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import utcnow
from saga.exceptions import BadRequestError, ForbiddenError, UnauthorizedError
from saga.lib.passwords import hash_password, verify_password
from saga.models.enums import UserRole, VerificationType
from saga.models.user import EmailVerification, User, UserSession
from saga.schemas.auth import SessionUser, SignupRequest, TokenPairResponse
from saga.services.event_service import Events, event_service

logger = logging.getLogger(__name__)

EMAIL_VERIFICATION_TTL_HOURS = 24
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def to_session_user(user: User) -> SessionUser:
    return SessionUser(
        username=user.username,
        email=user.email,
        role=user.role,
        name=user.name,
        picture=user.picture,
        is_email_verified=user.is_email_verified,
        is_premium=user.is_premium,
    )


class AuthService:
    # ── Signup ────────────────────────────────────────────────────────────

    async def signup(self, db: AsyncSession, payload: SignupRequest) -> User:
        email = payload.email.lower()
        username = payload.username.lower()

        existing = await db.execute(
            select(User.email, User.username).where(
                or_(User.email == email, User.username == username)
            )
        )
        for found_email, found_username in existing.all():
            if found_email == email:
                raise ForbiddenError("email already in use")
            if found_username == username:
                raise ForbiddenError("username already in use")

        user = User(
            email=email,
            username=username,
            password=hash_password(payload.password),
            role=UserRole.USER.value,
        )
        db.add(user)
        await db.flush()

        token = await self._create_token(db, email, VerificationType.EMAIL_VERIFICATION)
        logger.info("User signed up: %s (id=%s)", username, user.id)

        event_service.trigger(
            Events.SEND_EMAIL,
            {"to": email, "template": "welcome", "variables": {"username": username}},
        )
        event_service.trigger(
            Events.SEND_EMAIL,
            {
                "to": email,
                "template": "email_verification",
                "variables": {"username": username, "verification_link": self._verification_link(token)},
            },
        )
        if settings.admin_email:
            event_service.trigger(
                Events.SEND_EMAIL,
                {
                    "to": settings.admin_email,
                    "template": "admin_new_user_signup",
                    "variables": {
                        "username": username,
                        "email": email,
                        "signup_date": utcnow().strftime("%Y-%m-%d %H:%M UTC"),
                    },
                },
            )
        return user

    # ── Sessions ──────────────────────────────────────────────────────────

    async def authenticate(self, db: AsyncSession, login: str, password: str) -> User:
        """Resolve email-or-username + password to a user, or raise 400."""
        login = (login or "").strip().lower()
        result = await db.execute(
            select(User).where(
                or_(User.email == login, User.username == login),
                User.deleted_at.is_(None),
            )
        )
        user = result.scalar_one_or_none()
        if user is None or user.blocked or not verify_password(password, user.password):
            raise BadRequestError("bad email or password")
        return user

    async def login(
        self,
        db: AsyncSession,
        login: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[str, User]:
        """Create a session; returns `(sid, user)`."""
        user = await self.authenticate(db, login, password)
        sid = secrets.token_urlsafe(32)
        db.add(
            UserSession(
                sid=sid,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:512] or None,
                expires_at=utcnow() + timedelta(hours=settings.session_max_age_hours),
            )
        )
        await db.flush()
        logger.info("User %s logged in", user.username)
        return sid, user

    async def logout(self, db: AsyncSession, sid: Optional[str]) -> None:
        if not sid:
            return
        await db.execute(update(UserSession).where(UserSession.sid == sid).values(expired=True))

    async def validate_session(self, db: AsyncSession, sid: Optional[str]) -> User:
        """Return the session's user or raise UnauthorizedError."""
        if not sid:
            raise UnauthorizedError()
        result = await db.execute(
            select(User)
            .join(UserSession, UserSession.user_id == User.id)
            .where(
                UserSession.sid == sid,
                UserSession.expired.is_(False),
                UserSession.expires_at > utcnow(),
                User.deleted_at.is_(None),
                User.blocked.is_(False),
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise UnauthorizedError()
        return user

    async def expire_user_sessions(self, db: AsyncSession, user_id: int) -> None:
        await db.execute(
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.expired.is_(False))
            .values(expired=True)
        )

    # ── Password reset ────────────────────────────────────────────────────

    async def reset_password(self, db: AsyncSession, email: str) -> None:
        """Always succeeds from the caller's point of view."""
        email = email.strip().lower()
        user = (
            await db.execute(select(User).where(User.email == email, User.deleted_at.is_(None)))
        ).scalar_one_or_none()
        if user is None or user.blocked:
            logger.info("Password reset requested for unknown or blocked email")
            return

        outstanding = (
            await db.execute(
                select(func.count(EmailVerification.id)).where(
                    EmailVerification.email == email,
                    EmailVerification.type == VerificationType.PASSWORD_RESET.value,
                    EmailVerification.expired.is_(False),
                    EmailVerification.expires_at > utcnow(),
                )
            )
        ).scalar_one()
        if outstanding >= settings.password_reset_max_outstanding:
            logger.warning("Password reset throttled for user %s (%d outstanding)", user.id, outstanding)
            return

        token = await self._create_token(db, email, VerificationType.PASSWORD_RESET)
        event_service.trigger(
            Events.SEND_EMAIL,
            {
                "to": email,
                "template": "password_reset",
                "variables": {
                    "username": user.username,
                    "reset_link": f"{settings.app_base_url.rstrip('/')}/reset-password?token={token}",
                },
            },
        )

    async def validate_token(self, db: AsyncSession, token: str) -> bool:
        return await self._find_token(db, token, VerificationType.PASSWORD_RESET) is not None

    async def change_password(self, db: AsyncSession, token: str, password: str) -> None:
        record = await self._find_token(db, token, VerificationType.PASSWORD_RESET)
        if record is None:
            raise BadRequestError("invalid or expired token")

        user = (
            await db.execute(select(User).where(User.email == record.email, User.deleted_at.is_(None)))
        ).scalar_one_or_none()
        if user is None:
            raise BadRequestError("invalid or expired token")

        user.password = hash_password(password)
        # Consume every outstanding reset token of this email
        await db.execute(
            update(EmailVerification)
            .where(
                EmailVerification.email == record.email,
                EmailVerification.type == VerificationType.PASSWORD_RESET.value,
            )
            .values(expired=True)
        )
        await self.expire_user_sessions(db, user.id)
        await db.flush()
        logger.info("Password changed for user %s", user.id)

    # ── Email verification ────────────────────────────────────────────────

    async def send_email_verification(self, db: AsyncSession, user: User) -> None:
        if user.is_email_verified:
            raise BadRequestError("email already verified")
        token = await self._create_token(db, user.email, VerificationType.EMAIL_VERIFICATION)
        event_service.trigger(
            Events.SEND_EMAIL,
            {
                "to": user.email,
                "template": "email_verification",
                "variables": {"username": user.username, "verification_link": self._verification_link(token)},
            },
        )

    async def verify_email(self, db: AsyncSession, token: str) -> None:
        record = await self._find_token(db, token, VerificationType.EMAIL_VERIFICATION)
        if record is None:
            raise BadRequestError("invalid or expired token")
        user = (
            await db.execute(select(User).where(User.email == record.email, User.deleted_at.is_(None)))
        ).scalar_one_or_none()
        if user is None:
            raise BadRequestError("invalid or expired token")
        user.is_email_verified = True
        record.expired = True
        await db.flush()

    # ── Mobile JWT ────────────────────────────────────────────────────────

    async def login_mobile(self, db: AsyncSession, login: str, password: str) -> TokenPairResponse:
        user = await self.authenticate(db, login, password)
        return self.issue_tokens(user)

    async def refresh(self, db: AsyncSession, refresh_token: str) -> TokenPairResponse:
        payload = self.decode_token(refresh_token, expected_type=REFRESH_TOKEN)
        user = await db.get(User, int(payload["sub"]))
        if user is None or user.deleted_at is not None or user.blocked:
            raise UnauthorizedError("invalid refresh token")
        return self.issue_tokens(user)

    def issue_tokens(self, user: User) -> TokenPairResponse:
        now = datetime.now(timezone.utc)
        access_ttl = timedelta(minutes=settings.jwt_access_ttl_minutes)
        access = self._encode(
            {"sub": str(user.id), "role": user.role, "type": ACCESS_TOKEN}, now, access_ttl
        )
        refresh = self._encode(
            {"sub": str(user.id), "type": REFRESH_TOKEN},
            now,
            timedelta(days=settings.jwt_refresh_ttl_days),
        )
        return TokenPairResponse(
            access_token=access,
            refresh_token=refresh,
            expires_in=int(access_ttl.total_seconds()),
            user=to_session_user(user),
        )

    def decode_token(self, token: str, expected_type: str = ACCESS_TOKEN) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError("token expired")
        except jwt.InvalidTokenError as e:
            logger.debug("Invalid JWT: %s", e)
            raise UnauthorizedError("invalid token")
        if payload.get("type") != expected_type or not payload.get("sub"):
            raise UnauthorizedError("invalid token")
        return payload

    @staticmethod
    def _encode(claims: Dict[str, Any], now: datetime, ttl: timedelta) -> str:
        payload = dict(claims, iat=int(now.timestamp()), exp=int((now + ttl).timestamp()))
        return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    # ── Tokens ────────────────────────────────────────────────────────────

    async def _create_token(self, db: AsyncSession, email: str, kind: VerificationType) -> str:
        ttl = (
            timedelta(hours=settings.password_reset_ttl_hours)
            if kind == VerificationType.PASSWORD_RESET
            else timedelta(hours=EMAIL_VERIFICATION_TTL_HOURS)
        )
        token = secrets.token_urlsafe(32)
        db.add(
            EmailVerification(
                email=email,
                token=token,
                type=kind.value,
                expires_at=utcnow() + ttl,
            )
        )
        await db.flush()
        return token

    async def _find_token(
        self, db: AsyncSession, token: str, kind: VerificationType
    ) -> Optional[EmailVerification]:
        if not token:
            return None
        result = await db.execute(
            select(EmailVerification).where(
                EmailVerification.token == token,
                EmailVerification.type == kind.value,
                EmailVerification.expired.is_(False),
                EmailVerification.expires_at > utcnow(),
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _verification_link(token: str) -> str:
        return f"{settings.app_base_url.rstrip('/')}/verify-email?token={token}"


# Singleton instance
auth_service = AuthService()
