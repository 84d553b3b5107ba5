"""
Heimursaga API — Expedition Routes
====================================

Expeditions, their waypoints, the "current location" pointer, bookmarks
and the owner's sponsor-only notes. Private expeditions are visible to
their author only.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_optional_user, get_session_user
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.common import CountResponse, SuccessResponse
from saga.schemas.expedition import (
    ExpeditionCreateRequest,
    ExpeditionResponse,
    ExpeditionUpdateRequest,
    LocationRequest,
    NoteCreateRequest,
    NoteCreatedResponse,
    NoteListResponse,
    WaypointRequest,
    WaypointResponse,
    WaypointUpdateRequest,
)
from saga.schemas.explorer import BookmarkResponse
from saga.services.expedition_note_service import expedition_note_service
from saga.services.expedition_service import expedition_service

router = APIRouter(prefix=f"{settings.api_prefix}/expeditions", tags=["Expeditions"])


@router.post(
    "",
    status_code=201,
    response_model=ExpeditionResponse,
    responses=error_responses(400, 401, 404),
)
async def create_expedition(
    payload: ExpeditionCreateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> ExpeditionResponse:
    return await expedition_service.create(db, user, payload)


@router.get("/{expedition_id}", response_model=ExpeditionResponse, responses=error_responses(404))
async def get_expedition(
    expedition_id: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
) -> ExpeditionResponse:
    return await expedition_service.get(db, viewer, expedition_id)


@router.put("/{expedition_id}", response_model=ExpeditionResponse, responses=error_responses(400, 401, 404))
async def update_expedition(
    expedition_id: str,
    payload: ExpeditionUpdateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> ExpeditionResponse:
    return await expedition_service.update(db, user, expedition_id, payload)


@router.delete("/{expedition_id}", response_model=SuccessResponse, responses=error_responses(401, 404))
async def delete_expedition(
    expedition_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await expedition_service.delete(db, user, expedition_id)
    return SuccessResponse()


@router.post("/{expedition_id}/bookmark", response_model=BookmarkResponse, responses=error_responses(401, 404))
async def bookmark_expedition(
    expedition_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> BookmarkResponse:
    return await expedition_service.bookmark(db, user, expedition_id)


@router.put(
    "/{expedition_id}/location",
    response_model=ExpeditionResponse,
    responses=error_responses(400, 401, 404),
    summary="Point the expedition's current location at a waypoint or entry",
)
async def set_location(
    expedition_id: str,
    payload: LocationRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> ExpeditionResponse:
    return await expedition_service.set_location(db, user, expedition_id, payload)


# ── Waypoints ─────────────────────────────────────────────────────────────


@router.post(
    "/{expedition_id}/waypoints",
    status_code=201,
    response_model=WaypointResponse,
    responses=error_responses(400, 401, 404),
)
async def add_waypoint(
    expedition_id: str,
    payload: WaypointRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> WaypointResponse:
    return await expedition_service.add_waypoint(db, user, expedition_id, payload)


@router.put(
    "/{expedition_id}/waypoints/{waypoint_id}",
    response_model=WaypointResponse,
    responses=error_responses(400, 401, 404),
)
async def update_waypoint(
    expedition_id: str,
    waypoint_id: int,
    payload: WaypointUpdateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> WaypointResponse:
    return await expedition_service.update_waypoint(db, user, expedition_id, waypoint_id, payload)


@router.delete(
    "/{expedition_id}/waypoints/{waypoint_id}",
    response_model=SuccessResponse,
    responses=error_responses(401, 404),
)
async def delete_waypoint(
    expedition_id: str,
    waypoint_id: int,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await expedition_service.delete_waypoint(db, user, expedition_id, waypoint_id)
    return SuccessResponse()


# ── Notes ─────────────────────────────────────────────────────────────────


@router.get(
    "/{expedition_id}/notes",
    response_model=NoteListResponse,
    responses=error_responses(401, 403, 404),
    summary="Notes with replies; owner or active sponsors only",
)
async def list_notes(
    expedition_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> NoteListResponse:
    return await expedition_note_service.list(db, user, expedition_id)


@router.get("/{expedition_id}/notes/count", response_model=CountResponse, responses=error_responses(404))
async def count_notes(expedition_id: str, db: AsyncSession = Depends(get_db)) -> CountResponse:
    return await expedition_note_service.count(db, expedition_id)


@router.post(
    "/{expedition_id}/notes",
    status_code=201,
    response_model=NoteCreatedResponse,
    responses=error_responses(400, 401, 403, 404),
)
async def create_note(
    expedition_id: str,
    payload: NoteCreateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> NoteCreatedResponse:
    return await expedition_note_service.create(db, user, expedition_id, payload.text)


@router.post(
    "/{expedition_id}/notes/{note_id}/replies",
    status_code=201,
    response_model=NoteCreatedResponse,
    responses=error_responses(400, 401, 403, 404),
)
async def reply_to_note(
    expedition_id: str,
    note_id: int,
    payload: NoteCreateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> NoteCreatedResponse:
    return await expedition_note_service.reply(db, user, expedition_id, note_id, payload.text)


@router.delete(
    "/{expedition_id}/notes/{note_id}",
    response_model=SuccessResponse,
    responses=error_responses(401, 403, 404),
)
async def delete_note(
    expedition_id: str,
    note_id: int,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await expedition_note_service.delete(db, user, expedition_id, note_id)
    return SuccessResponse()
