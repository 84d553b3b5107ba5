"""
Heimursaga API — Admin Routes
===============================

Moderation views. Every route requires the admin role; flags and explorer
blocking live in flags.py and explorers.py.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, require_admin
from saga.routes import error_responses
from saga.schemas.common import SuccessResponse
from saga.schemas.entry import EntryListResponse
from saga.schemas.expedition import ExpeditionListResponse
from saga.schemas.explorer import ExplorerListResponse
from saga.schemas.search import AdminStatsResponse
from saga.services.admin_service import admin_service

router = APIRouter(
    prefix=f"{settings.api_prefix}/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
    responses=error_responses(401, 403),
)


@router.get("/stats", response_model=AdminStatsResponse)
async def stats(db: AsyncSession = Depends(get_db)) -> AdminStatsResponse:
    return await admin_service.stats(db)


@router.get("/entries", response_model=EntryListResponse)
async def entries(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> EntryListResponse:
    return await admin_service.entries(db, limit=limit, offset=offset)


@router.get("/expeditions", response_model=ExpeditionListResponse)
async def expeditions(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> ExpeditionListResponse:
    return await admin_service.expeditions(db, limit=limit, offset=offset)


@router.get("/explorers", response_model=ExplorerListResponse)
async def explorers(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> ExplorerListResponse:
    return await admin_service.explorers(db, limit=limit, offset=offset)


@router.delete("/entries/{entry_id}", response_model=SuccessResponse, responses=error_responses(404))
async def delete_entry(entry_id: str, db: AsyncSession = Depends(get_db)) -> SuccessResponse:
    await admin_service.delete_entry(db, entry_id)
    return SuccessResponse()


@router.delete("/expeditions/{expedition_id}", response_model=SuccessResponse, responses=error_responses(404))
async def delete_expedition(expedition_id: str, db: AsyncSession = Depends(get_db)) -> SuccessResponse:
    await admin_service.delete_expedition(db, expedition_id)
    return SuccessResponse()
