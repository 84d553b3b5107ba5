"""Expedition, waypoint and location schemas. Money in dollars."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from saga.models.enums import ExpeditionStatus, Visibility
from saga.schemas.common import UserSummary


class ExpeditionCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: ExpeditionStatus = ExpeditionStatus.PLANNED
    visibility: Visibility = Visibility.PUBLIC
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    goal: float = Field(default=0, ge=0, le=1_000_000)
    cover_upload_id: Optional[str] = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ExpeditionUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[ExpeditionStatus] = None
    visibility: Optional[Visibility] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    goal: Optional[float] = Field(default=None, ge=0, le=1_000_000)
    cover_upload_id: Optional[str] = Field(default=None, max_length=32)


class WaypointRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    date: Optional[datetime] = None
    sequence: int = Field(default=0, ge=0)


class WaypointUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lon: Optional[float] = Field(default=None, ge=-180, le=180)
    date: Optional[datetime] = None
    sequence: Optional[int] = Field(default=None, ge=0)


class WaypointResponse(BaseModel):
    id: int
    title: Optional[str] = None
    lat: float
    lon: float
    date: Optional[datetime] = None
    sequence: int


class LocationRequest(BaseModel):
    type: Literal["waypoint", "entry"]
    id: str = Field(min_length=1, max_length=32)


class LocationResponse(BaseModel):
    type: str
    id: str
    lat: float
    lon: float
    name: str


class ExpeditionResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    visibility: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    cover_image: Optional[str] = None
    goal: float
    raised: float
    entries_count: int
    author: UserSummary
    location: Optional[LocationResponse] = None
    waypoints: List[WaypointResponse] = Field(default_factory=list)
    bookmarked: bool = False
    created_at: datetime


class ExpeditionListResponse(BaseModel):
    results: List[ExpeditionResponse]


class NoteCreateRequest(BaseModel):
    text: str = Field(min_length=1, max_length=500)


class NoteReplyResponse(BaseModel):
    id: int
    note_id: int
    author: UserSummary
    is_explorer: bool
    text: str
    created_at: datetime


class NoteResponse(BaseModel):
    id: int
    text: str
    expedition_status: str
    created_at: datetime
    replies: List[NoteReplyResponse] = Field(default_factory=list)


class NoteDailyLimit(BaseModel):
    used: int
    # 0 means no limit
    max: int


class NoteListResponse(BaseModel):
    results: List[NoteResponse]
    daily_limit: NoteDailyLimit


class NoteCreatedResponse(BaseModel):
    id: int
