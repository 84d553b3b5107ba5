"""Notification schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from saga.schemas.common import UserSummary


class NotificationResponse(BaseModel):
    id: str
    context: str
    body: Optional[str] = None
    mention_user: Optional[UserSummary] = None
    mention_entry_id: Optional[str] = None
    sponsorship_type: Optional[str] = None
    sponsorship_amount: Optional[float] = None
    sponsorship_currency: Optional[str] = None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    results: List[NotificationResponse]
    page: int
    limit: int
    total: int


class BadgeCountResponse(BaseModel):
    notifications: int
    messages: int = 0
