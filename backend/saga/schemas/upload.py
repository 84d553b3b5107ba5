"""Upload response schema."""

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    id: str = Field(description="Upload public id, referenced by entries/profiles")
    url: str = Field(description="URL path serving the stored image")
    context: str
    mime_type: str
    size: int
