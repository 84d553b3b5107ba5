"""
Heimursaga API — Route Dependencies
=====================================

What:  Resolves the caller of a request and enforces roles.
How:   A caller is identified, in order, by:
           1. the `sid` session cookie (web)
           2. an `Authorization: Bearer <access JWT>` header (mobile)
       `get_session_user` requires one of them; `get_optional_user` lets
       anonymous callers through. `require_roles(...)` builds a dependency
       that also checks the role; admins pass every role check.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import get_db_session
from saga.exceptions import ForbiddenError, UnauthorizedError
from saga.models.enums import UserRole
from saga.models.user import User
from saga.services.auth_service import ACCESS_TOKEN, auth_service

logger = logging.getLogger(__name__)

get_db = get_db_session


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


async def _user_from_token(db: AsyncSession, token: str) -> User:
    payload = auth_service.decode_token(token, ACCESS_TOKEN)
    result = await db.execute(
        select(User).where(
            User.id == int(payload["sub"]),
            User.deleted_at.is_(None),
            User.blocked.is_(False),
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise UnauthorizedError()
    return user


async def get_session_user(
    request: Request, db: AsyncSession = Depends(get_db_session)
) -> User:
    sid = request.cookies.get(settings.session_cookie_name)
    if sid:
        return await auth_service.validate_session(db, sid)
    token = _bearer_token(request)
    if token:
        return await _user_from_token(db, token)
    raise UnauthorizedError()


async def get_optional_user(
    request: Request, db: AsyncSession = Depends(get_db_session)
) -> Optional[User]:
    try:
        return await get_session_user(request, db)
    except UnauthorizedError:
        return None


def require_roles(*roles: UserRole):
    """Dependency factory: the caller must hold one of `roles` (admins always pass)."""
    allowed = {r.value for r in roles}

    async def dependency(user: User = Depends(get_session_user)) -> User:
        if user.role != UserRole.ADMIN.value and user.role not in allowed:
            logger.debug("User %s (%s) denied; requires %s", user.id, user.role, sorted(allowed))
            raise ForbiddenError()
        return user

    return dependency


require_pro = require_roles(UserRole.CREATOR)
require_admin = require_roles(UserRole.ADMIN)


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
