"""Direct message Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from agora.schemas.common import UserSummary


class SendMessageRequest(BaseModel):
    """Request body for sending a direct message (1-5000 chars after trimming)."""

    content: str = Field(..., min_length=1, max_length=10000)


class EditMessageRequest(BaseModel):
    """Request body for editing a sent message."""

    content: str = Field(..., min_length=1, max_length=10000)


class MessageOut(BaseModel):
    """Response schema for a message."""

    id: UUID
    sender_id: UUID
    recipient_id: UUID
    content: str
    is_read: bool
    is_edited: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationOut(BaseModel):
    """Latest message with one counterpart."""

    user: UserSummary
    last_message: MessageOut
    unread_count: int
