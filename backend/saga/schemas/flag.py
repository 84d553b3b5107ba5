"""Content flag schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from saga.models.enums import FlagActionType, FlagCategory, FlagStatus
from saga.schemas.common import UserSummary


class FlagCreateRequest(BaseModel):
    category: FlagCategory
    description: Optional[str] = Field(default=None, max_length=500)
    entry_id: Optional[str] = Field(default=None, max_length=32)
    comment_id: Optional[str] = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def check_single_target(self):
        if bool(self.entry_id) == bool(self.comment_id):
            raise ValueError("exactly one of entry_id or comment_id is required")
        return self


class FlagUpdateRequest(BaseModel):
    status: FlagStatus
    action_taken: Optional[FlagActionType] = None
    admin_notes: Optional[str] = Field(default=None, max_length=2000)


class FlagResponse(BaseModel):
    id: str
    category: str
    description: Optional[str] = None
    status: str
    reporter: UserSummary
    target_type: str
    target_id: str
    target_preview: Optional[str] = None
    reviewed_by: Optional[UserSummary] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    action_taken: Optional[str] = None
    created_at: datetime


class FlagListResponse(BaseModel):
    results: List[FlagResponse]
    total: int
