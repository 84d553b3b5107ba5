"""Comment schemas. Threads are one level deep."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from saga.schemas.common import UserSummary


class CommentCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
    parent_id: Optional[str] = Field(default=None, max_length=32)


class CommentUpdateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=1000)


class CommentResponse(BaseModel):
    id: str
    content: str
    author: UserSummary
    parent_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    replies: List["CommentResponse"] = Field(default_factory=list)
    reply_count: int = 0


class CommentListResponse(BaseModel):
    results: List[CommentResponse]
    next_cursor: Optional[int] = None
    has_more: bool = False


class CommentToggleResponse(BaseModel):
    comments_enabled: bool
