"""
Heimursaga API — Entry Routes
===============================

Journal entries and the comment threads under them. The feed and single
entries are readable anonymously; sponsor-only entries come back with
`locked=true` and no content for viewers without an active sponsorship.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_optional_user, get_session_user
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.comment import (
    CommentCreateRequest,
    CommentListResponse,
    CommentResponse,
    CommentToggleResponse,
)
from saga.schemas.common import SuccessResponse
from saga.schemas.entry import (
    EntryBookmarkResponse,
    EntryCreateRequest,
    EntryListResponse,
    EntryResponse,
    EntryUpdateRequest,
    LikeResponse,
)
from saga.services.comment_service import comment_service
from saga.services.entry_service import entry_service

router = APIRouter(prefix=f"{settings.api_prefix}/entries", tags=["Entries"])


@router.get("", response_model=EntryListResponse, summary="Public feed, newest first")
async def list_entries(
    cursor: Optional[int] = Query(default=None, description="`next_cursor` of the previous page"),
    limit: int = Query(default=20, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> EntryListResponse:
    return await entry_service.list_feed(db, viewer=viewer, cursor=cursor, limit=limit)


@router.post(
    "",
    status_code=201,
    response_model=EntryResponse,
    responses=error_responses(400, 401, 403, 404),
    summary="Create an entry or a draft",
)
async def create_entry(
    payload: EntryCreateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> EntryResponse:
    return await entry_service.create(db, user, payload)


@router.get("/{entry_id}", response_model=EntryResponse, responses=error_responses(404))
async def get_entry(
    entry_id: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> EntryResponse:
    return await entry_service.get(db, viewer, entry_id)


@router.put("/{entry_id}", response_model=EntryResponse, responses=error_responses(400, 401, 403, 404))
async def update_entry(
    entry_id: str,
    payload: EntryUpdateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> EntryResponse:
    return await entry_service.update(db, user, entry_id, payload)


@router.delete("/{entry_id}", response_model=SuccessResponse, responses=error_responses(401, 404))
async def delete_entry(
    entry_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await entry_service.delete(db, user, entry_id)
    return SuccessResponse()


@router.post("/{entry_id}/like", response_model=LikeResponse, responses=error_responses(401, 404))
async def like_entry(
    entry_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> LikeResponse:
    return await entry_service.like(db, user, entry_id)


@router.post("/{entry_id}/bookmark", response_model=EntryBookmarkResponse, responses=error_responses(401, 404))
async def bookmark_entry(
    entry_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> EntryBookmarkResponse:
    return await entry_service.bookmark(db, user, entry_id)


# ── Comments ──────────────────────────────────────────────────────────────


@router.get("/{entry_id}/comments", response_model=CommentListResponse, responses=error_responses(404))
async def list_comments(
    entry_id: str,
    cursor: Optional[int] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> CommentListResponse:
    return await comment_service.list(db, entry_id, cursor=cursor, limit=limit, viewer=viewer)


@router.post(
    "/{entry_id}/comments",
    status_code=201,
    response_model=CommentResponse,
    responses=error_responses(400, 401, 403, 404),
    summary="Comment on an entry, or reply with parent_id",
)
async def create_comment(
    entry_id: str,
    payload: CommentCreateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    return await comment_service.create(db, user, entry_id, payload.content, payload.parent_id)


@router.post(
    "/{entry_id}/comments/toggle",
    response_model=CommentToggleResponse,
    responses=error_responses(401, 403, 404),
    summary="Enable or disable comments (entry author)",
)
async def toggle_comments(
    entry_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> CommentToggleResponse:
    return await comment_service.toggle(db, user, entry_id)
