"""Comment-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from agora.schemas.common import UserSummary


class CreateCommentRequest(BaseModel):
    """Request body for commenting on a post (parent_id for replies)."""

    content: str = Field(..., min_length=1, max_length=1000)
    parent_id: UUID | None = None


class UpdateCommentRequest(BaseModel):
    """Request body for editing a comment."""

    content: str = Field(..., min_length=1, max_length=1000)


class CommentOut(BaseModel):
    """Response schema for a comment."""

    id: UUID
    post_id: UUID
    parent_id: UUID | None
    author: UserSummary
    content: str
    created_at: datetime
    updated_at: datetime
    like_count: int = 0
    reply_count: int = 0
    is_liked: bool = False
