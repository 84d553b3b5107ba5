"""Search, map and admin schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from saga.schemas.common import UserSummary


class SearchEntry(BaseModel):
    id: str
    title: Optional[str] = None
    place: Optional[str] = None
    author: UserSummary
    date: Optional[datetime] = None


class SearchResponse(BaseModel):
    explorers: List[UserSummary]
    entries: List[SearchEntry]


class MapEntry(BaseModel):
    id: str
    title: Optional[str] = None
    place: Optional[str] = None
    lat: float
    lon: float
    date: Optional[datetime] = None
    author: str


class MapWaypoint(BaseModel):
    id: int
    expedition_id: str
    title: Optional[str] = None
    lat: float
    lon: float


class MapResponse(BaseModel):
    entries: List[MapEntry]
    waypoints: List[MapWaypoint]


class AdminStatsResponse(BaseModel):
    users: int
    pro_users: int
    entries: int
    expeditions: int
    pending_flags: int
    active_sponsorships: int
