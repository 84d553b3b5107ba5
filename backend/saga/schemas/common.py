"""Shared response models: errors, health, users embedded in other objects."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every non-2xx response (see `saga.exceptions`)."""

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable message, safe to display")
    details: Dict[str, Any] = Field(default_factory=dict)
    request_id: str = Field(default="", description="Correlates with the X-Request-ID header")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or degraded")
    database: str = Field(description="connected or disconnected")
    version: str
    uptime_seconds: float
    timestamp: datetime


class SuccessResponse(BaseModel):
    success: bool = True


class UserSummary(BaseModel):
    """Compact author/participant representation."""

    username: str
    name: Optional[str] = None
    picture: Optional[str] = None
    is_pro: bool = False

    @classmethod
    def from_user(cls, user) -> Optional["UserSummary"]:
        if user is None:
            return None
        return cls(
            username=user.username,
            name=user.name,
            picture=user.picture,
            is_pro=user.is_pro,
        )


class CountResponse(BaseModel):
    count: int
