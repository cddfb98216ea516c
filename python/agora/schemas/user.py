"""User-related Pydantic schemas.

Contains request and response models for auth and user endpoints.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from agora.schemas.common import UserSummary

__all__ = [
    "CreateProfileRequest",
    "UpdateProfileRequest",
    "DeleteAccountRequest",
    "UserSummary",
    "UserProfileOut",
]

# =============================================================================
# Request Schemas
# =============================================================================


class CreateProfileRequest(BaseModel):
    """Request body for creating the caller's profile on first login."""

    username: str = Field(..., description="3-30 chars of letters, digits, underscore")
    display_name: str | None = Field(default=None, max_length=50)
    bio: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = Field(default=None, max_length=2048)


class UpdateProfileRequest(BaseModel):
    """Request body for updating the caller's profile. At least one field."""

    display_name: str | None = Field(default=None, max_length=50)
    bio: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = Field(default=None, max_length=2048)
    is_private: bool | None = None

    @model_validator(mode="after")
    def require_one_field(self) -> "UpdateProfileRequest":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class DeleteAccountRequest(BaseModel):
    """Request body for deleting the caller's account."""

    confirm_username: str = Field(..., min_length=1, description="Must equal the caller's username")


# =============================================================================
# Response Schemas
# =============================================================================


class UserProfileOut(BaseModel):
    """Response schema for a user profile.

    Relationship flags are None when the viewer is anonymous.
    """

    id: UUID
    username: str
    display_name: str | None
    bio: str | None
    avatar_url: str | None
    is_private: bool
    created_at: datetime
    followers_count: int = 0
    following_count: int = 0
    posts_count: int = 0
    is_self: bool = False
    is_following: bool | None = None
    is_blocked: bool | None = None

    model_config = ConfigDict(from_attributes=True)
