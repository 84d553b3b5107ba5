"""Journal entry schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from saga.models.enums import EntryType, Visibility
from saga.schemas.common import UserSummary


class EntryCreateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = Field(default=None, max_length=50_000)
    place: Optional[str] = Field(default=None, max_length=255)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lon: Optional[float] = Field(default=None, ge=-180, le=180)
    date: Optional[datetime] = None
    entry_type: EntryType = EntryType.STANDARD
    visibility: Visibility = Visibility.PUBLIC
    is_draft: bool = False
    comments_enabled: bool = True
    expedition_id: Optional[str] = Field(default=None, max_length=32)
    cover_upload_id: Optional[str] = Field(default=None, max_length=32)


class EntryUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = Field(default=None, max_length=50_000)
    place: Optional[str] = Field(default=None, max_length=255)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lon: Optional[float] = Field(default=None, ge=-180, le=180)
    date: Optional[datetime] = None
    entry_type: Optional[EntryType] = None
    visibility: Optional[Visibility] = None
    is_draft: Optional[bool] = None
    comments_enabled: Optional[bool] = None
    expedition_id: Optional[str] = Field(default=None, max_length=32)
    cover_upload_id: Optional[str] = Field(default=None, max_length=32)


class EntryResponse(BaseModel):
    id: str
    title: Optional[str] = None
    content: Optional[str] = None
    place: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    country_code: Optional[str] = None
    date: Optional[datetime] = None
    cover_image: Optional[str] = None
    entry_type: str
    visibility: str
    is_draft: bool
    comments_enabled: bool
    likes_count: int
    bookmarks_count: int
    comments_count: int
    author: UserSummary
    expedition_id: Optional[str] = None
    liked: bool = False
    bookmarked: bool = False
    locked: bool = Field(default=False, description="Content withheld: sponsors-only entry")
    created_at: datetime


class EntryListResponse(BaseModel):
    results: List[EntryResponse]
    next_cursor: Optional[int] = None
    has_more: bool = False


class LikeResponse(BaseModel):
    liked: bool
    likes_count: int


class EntryBookmarkResponse(BaseModel):
    bookmarked: bool
    bookmarks_count: int
