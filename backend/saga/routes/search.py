"""
Heimursaga API — Search & Map Routes
======================================
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db
from saga.routes import error_responses
from saga.schemas.search import MapResponse, SearchResponse
from saga.services.search_service import MAP_LIMIT, search_service

router = APIRouter(prefix=settings.api_prefix, tags=["Search"])


@router.get(
    "/search",
    response_model=SearchResponse,
    responses=error_responses(400),
    summary="Explorers and entries matching a query",
)
async def search(
    q: str = Query(..., max_length=100),
    db: AsyncSession = Depends(get_db),
) -> SearchResponse:
    return await search_service.search(db, q)


@router.get(
    "/map",
    response_model=MapResponse,
    responses=error_responses(400),
    summary="Public entries and waypoints inside a bounding box",
)
async def map_query(
    sw_lat: float = Query(..., ge=-90, le=90),
    sw_lon: float = Query(..., ge=-180, le=180),
    ne_lat: float = Query(..., ge=-90, le=90),
    ne_lon: float = Query(..., ge=-180, le=180),
    limit: int = Query(default=MAP_LIMIT, ge=1, le=MAP_LIMIT),
    db: AsyncSession = Depends(get_db),
) -> MapResponse:
    return await search_service.map_query(db, sw_lat, sw_lon, ne_lat, ne_lon, limit=limit)
