"""Explorer profiles, follows, user settings and insights."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from saga.schemas.common import UserSummary


class ExplorerResponse(BaseModel):
    username: str
    name: Optional[str] = None
    bio: Optional[str] = None
    picture: Optional[str] = None
    cover_photo: Optional[str] = None
    location_from: Optional[str] = None
    location_lives: Optional[str] = None
    website: Optional[str] = None
    role: str
    is_pro: bool
    followers_count: int
    following_count: int
    entries_count: int
    resting: bool = False
    followed: bool = False
    bookmarked: bool = False
    created_at: datetime


class ExplorerListResponse(BaseModel):
    results: List[ExplorerResponse]
    next_cursor: Optional[int] = None
    has_more: bool = False


class FollowListResponse(BaseModel):
    results: List[UserSummary]


class BookmarkResponse(BaseModel):
    bookmarked: bool


class UserSettingsResponse(BaseModel):
    username: str
    email: str
    name: Optional[str] = None
    bio: Optional[str] = None
    picture: Optional[str] = None
    cover_photo: Optional[str] = None
    location_from: Optional[str] = None
    location_lives: Optional[str] = None
    website: Optional[str] = None
    email_notifications: bool = True


class UserSettingsUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=1000)
    location_from: Optional[str] = Field(default=None, max_length=255)
    location_lives: Optional[str] = Field(default=None, max_length=255)
    website: Optional[str] = Field(default=None, max_length=512)
    email_notifications: Optional[bool] = None


class UploadReference(BaseModel):
    upload_id: str = Field(min_length=1, max_length=32)


class PictureResponse(BaseModel):
    url: str


class EntryInsight(BaseModel):
    id: str
    title: Optional[str] = None
    date: Optional[datetime] = None
    views: int
    likes: int
    bookmarks: int
    comments: int


class InsightsResponse(BaseModel):
    entries: List[EntryInsight]
    total_views: int
    total_likes: int
    total_bookmarks: int
    total_comments: int
