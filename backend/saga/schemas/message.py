"""Direct messages between Explorer Pro members."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from saga.schemas.common import UserSummary


class MessageSendRequest(BaseModel):
    recipient: str = Field(min_length=1, max_length=30, description="Recipient username")
    content: str = Field(min_length=1, max_length=2000)


class MessageResponse(BaseModel):
    id: str
    sender: UserSummary
    recipient: UserSummary
    content: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class ConversationResponse(BaseModel):
    partner: UserSummary
    last_message: MessageResponse
    unread_count: int


class ConversationListResponse(BaseModel):
    results: List[ConversationResponse]


class MessageListResponse(BaseModel):
    results: List[MessageResponse]
