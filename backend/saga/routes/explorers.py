"""
Heimursaga API — Explorer Routes
==================================

Public profiles and the social graph. Reads accept anonymous callers;
follow and bookmark need a session; block and unblock are admin only.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_optional_user, get_session_user, require_admin
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.common import SuccessResponse
from saga.schemas.entry import EntryListResponse
from saga.schemas.expedition import ExpeditionListResponse
from saga.schemas.explorer import (
    BookmarkResponse,
    ExplorerListResponse,
    ExplorerResponse,
    FollowListResponse,
)
from saga.schemas.search import MapResponse
from saga.schemas.sponsor import TiersResponse
from saga.services.entry_service import entry_service
from saga.services.expedition_service import expedition_service
from saga.services.explorer_service import explorer_service
from saga.services.search_service import search_service
from saga.services.sponsor_service import sponsor_service

router = APIRouter(prefix=f"{settings.api_prefix}/explorers", tags=["Explorers"])


@router.get("", response_model=ExplorerListResponse, summary="List explorers, newest first")
async def list_explorers(
    cursor: Optional[int] = Query(default=None, description="`next_cursor` of the previous page"),
    limit: int = Query(default=20, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> ExplorerListResponse:
    return await explorer_service.list_explorers(db, viewer=viewer, cursor=cursor, limit=limit)


@router.get(
    "/{username}",
    response_model=ExplorerResponse,
    responses=error_responses(404),
    summary="Get an explorer profile",
)
async def get_explorer(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> ExplorerResponse:
    return await explorer_service.get_by_username(db, username, viewer=viewer)


@router.post(
    "/{username}/follow",
    response_model=SuccessResponse,
    responses=error_responses(400, 401, 404),
    summary="Follow an explorer",
)
async def follow(
    username: str, user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await explorer_service.follow(db, user, username)
    return SuccessResponse()


@router.post(
    "/{username}/unfollow",
    response_model=SuccessResponse,
    responses=error_responses(400, 401, 404),
    summary="Unfollow an explorer",
)
async def unfollow(
    username: str, user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await explorer_service.unfollow(db, user, username)
    return SuccessResponse()


@router.get("/{username}/followers", response_model=FollowListResponse, responses=error_responses(404))
async def followers(username: str, db: AsyncSession = Depends(get_db)) -> FollowListResponse:
    return await explorer_service.followers(db, username)


@router.get("/{username}/following", response_model=FollowListResponse, responses=error_responses(404))
async def following(username: str, db: AsyncSession = Depends(get_db)) -> FollowListResponse:
    return await explorer_service.following(db, username)


@router.get(
    "/{username}/entries",
    response_model=EntryListResponse,
    responses=error_responses(404),
    summary="Public entries of an explorer",
)
async def explorer_entries(
    username: str,
    cursor: Optional[int] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> EntryListResponse:
    return await entry_service.list_feed(db, viewer=viewer, cursor=cursor, limit=limit, author=username)


@router.get(
    "/{username}/expeditions",
    response_model=ExpeditionListResponse,
    responses=error_responses(404),
    summary="Expeditions of an explorer",
)
async def explorer_expeditions(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> ExpeditionListResponse:
    return await expedition_service.list_by_explorer(db, username, viewer=viewer)


@router.get(
    "/{username}/map",
    response_model=MapResponse,
    responses=error_responses(404),
    summary="Located entries and waypoints of an explorer",
)
async def explorer_map(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> MapResponse:
    return await search_service.explorer_map(db, username, viewer=viewer)


@router.get(
    "/{username}/sponsorship-tiers",
    response_model=TiersResponse,
    responses=error_responses(404),
    summary="Available sponsorship tiers of an explorer",
)
async def sponsorship_tiers(username: str, db: AsyncSession = Depends(get_db)) -> TiersResponse:
    return await sponsor_service.tiers_by_username(db, username)


@router.post(
    "/{username}/bookmark",
    response_model=BookmarkResponse,
    responses=error_responses(400, 401, 404),
    summary="Toggle an explorer bookmark",
)
async def bookmark(
    username: str, user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> BookmarkResponse:
    return await explorer_service.bookmark_explorer(db, user, username)


@router.post(
    "/{username}/block",
    response_model=SuccessResponse,
    responses=error_responses(400, 403, 404),
    summary="Block an explorer (admin)",
)
async def block(
    username: str, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await explorer_service.admin_block(db, username)
    return SuccessResponse()


@router.post(
    "/{username}/unblock",
    response_model=SuccessResponse,
    responses=error_responses(403, 404),
    summary="Unblock an explorer (admin)",
)
async def unblock(
    username: str, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await explorer_service.admin_unblock(db, username)
    return SuccessResponse()
