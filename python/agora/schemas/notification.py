"""Notification Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator

from agora.schemas.common import UserSummary


class NotificationOut(BaseModel):
    """Response schema for a notification."""

    id: UUID
    type: str
    reference_type: str
    reference_id: UUID
    is_read: bool
    created_at: datetime
    sender: UserSummary


class NotificationPreferencesOut(BaseModel):
    """Per-type delivery switches."""

    like: bool = True
    comment: bool = True
    comment_like: bool = True
    follow: bool = True
    mention: bool = True
    share: bool = True
    message: bool = True

    model_config = ConfigDict(from_attributes=True)


class UpdatePreferencesRequest(BaseModel):
    """Partial preference update. At least one field."""

    like: bool | None = None
    comment: bool | None = None
    comment_like: bool | None = None
    follow: bool | None = None
    mention: bool | None = None
    share: bool | None = None
    message: bool | None = None

    @model_validator(mode="after")
    def require_one_field(self) -> "UpdatePreferencesRequest":
        if not any(getattr(self, name) is not None for name in self.model_fields_set):
            raise ValueError("At least one preference must be provided")
        return self
