"""Post-related Pydantic schemas.

Contains request and response models for post and feed endpoints.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from agora.schemas.common import UserSummary

VisibilityValue = Literal["public", "followers", "private"]

MAX_MEDIA_URLS = 10
MAX_TAGS = 20


def _check_media_urls(urls: list[str]) -> list[str]:
    for url in urls:
        if not url.startswith(("http://", "https://")):
            raise ValueError("media_urls must be http(s) URLs")
    return urls


# =============================================================================
# Request Schemas
# =============================================================================


class CreatePostRequest(BaseModel):
    """Request body for creating a post. Content or media is required."""

    content: str | None = Field(default=None, max_length=2000)
    media_urls: list[str] = Field(default_factory=list, max_length=MAX_MEDIA_URLS)
    visibility: VisibilityValue = "public"
    tags: list[str] = Field(default_factory=list, max_length=MAX_TAGS)

    @field_validator("media_urls")
    @classmethod
    def validate_media_urls(cls, v: list[str]) -> list[str]:
        return _check_media_urls(v)

    @model_validator(mode="after")
    def require_content_or_media(self) -> "CreatePostRequest":
        if not (self.content and self.content.strip()) and not self.media_urls:
            raise ValueError("Post must have content or media")
        return self


class UpdatePostRequest(BaseModel):
    """Request body for editing a post. At least one field."""

    content: str | None = Field(default=None, max_length=2000)
    visibility: VisibilityValue | None = None
    tags: list[str] | None = Field(default=None, max_length=MAX_TAGS)

    @model_validator(mode="after")
    def require_one_field(self) -> "UpdatePostRequest":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


# =============================================================================
# Response Schemas
# =============================================================================


class PostOut(BaseModel):
    """Response schema for a post with engagement counts.

    is_liked / is_bookmarked are False for anonymous viewers.
    """

    id: UUID
    author: UserSummary
    content: str | None
    media_urls: list[str]
    visibility: VisibilityValue
    tags: list[str]
    created_at: datetime
    updated_at: datetime
    like_count: int = 0
    comment_count: int = 0
    share_count: int = 0
    is_liked: bool = False
    is_bookmarked: bool = False


class TrendingTagOut(BaseModel):
    """One trending hashtag and how many posts carry it."""

    tag: str
    count: int
