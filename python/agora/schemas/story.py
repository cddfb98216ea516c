"""Story-related Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from agora.schemas.common import UserSummary

MediaTypeValue = Literal["image", "video"]


class CreateStoryRequest(BaseModel):
    """Request body for posting a story.

    duration_hours defaults to the configured story lifetime (24h).
    """

    media_url: str = Field(..., min_length=1, max_length=2048)
    media_type: MediaTypeValue
    caption: str | None = Field(default=None, max_length=200)
    duration_hours: int | None = Field(default=None, ge=1)

    @field_validator("media_url")
    @classmethod
    def validate_media_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("media_url must be an http(s) URL")
        return v


class StoryOut(BaseModel):
    """Response schema for a story."""

    id: UUID
    author: UserSummary
    media_url: str
    media_type: MediaTypeValue
    caption: str | None
    created_at: datetime
    expires_at: datetime
    is_viewed: bool = False
    view_count: int | None = None  # Only for the author


class StoryGroupOut(BaseModel):
    """Active stories of one author, oldest first."""

    author: UserSummary
    stories: list[StoryOut]
    has_unviewed: bool


class StoryViewerOut(BaseModel):
    """One viewer of a story."""

    user: UserSummary
    viewed_at: datetime
