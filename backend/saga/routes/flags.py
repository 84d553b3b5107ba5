"""
Heimursaga API — Flag Routes
==============================

Any signed-in explorer can report an entry or a comment. Reviewing and
acting on reports is admin only.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_session_user, require_admin
from saga.models.enums import FlagStatus
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.flag import FlagCreateRequest, FlagListResponse, FlagResponse, FlagUpdateRequest
from saga.services.flag_service import flag_service

router = APIRouter(prefix=f"{settings.api_prefix}/flags", tags=["Flags"])


@router.post(
    "",
    status_code=201,
    response_model=FlagResponse,
    responses=error_responses(400, 401, 404, 409),
    summary="Report an entry or comment",
)
async def create_flag(
    payload: FlagCreateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> FlagResponse:
    return await flag_service.create(db, user, payload)


@router.get("", response_model=FlagListResponse, responses=error_responses(401, 403))
async def list_flags(
    status: Optional[FlagStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FlagListResponse:
    return await flag_service.list(db, status=status, limit=limit, offset=offset)


@router.get("/{flag_id}", response_model=FlagResponse, responses=error_responses(401, 403, 404))
async def get_flag(
    flag_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FlagResponse:
    return await flag_service.get(db, flag_id)


@router.put(
    "/{flag_id}",
    response_model=FlagResponse,
    responses=error_responses(400, 401, 403, 404),
    summary="Resolve a report, optionally deleting content or blocking the author",
)
async def update_flag(
    flag_id: str,
    payload: FlagUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FlagResponse:
    return await flag_service.update(db, admin, flag_id, payload)
