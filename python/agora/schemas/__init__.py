"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from agora.schemas.comment import CommentOut, CreateCommentRequest, UpdateCommentRequest
from agora.schemas.common import CountOut, Page, UserSummary, parse_page
from agora.schemas.message import (
    ConversationOut,
    EditMessageRequest,
    MessageOut,
    SendMessageRequest,
)
from agora.schemas.notification import (
    NotificationOut,
    NotificationPreferencesOut,
    UpdatePreferencesRequest,
)
from agora.schemas.post import CreatePostRequest, PostOut, TrendingTagOut, UpdatePostRequest
from agora.schemas.story import CreateStoryRequest, StoryGroupOut, StoryOut, StoryViewerOut
from agora.schemas.user import (
    CreateProfileRequest,
    DeleteAccountRequest,
    UpdateProfileRequest,
    UserProfileOut,
)

__all__ = [
    # Common
    "CountOut",
    "Page",
    "UserSummary",
    "parse_page",
    # Users
    "CreateProfileRequest",
    "DeleteAccountRequest",
    "UpdateProfileRequest",
    "UserProfileOut",
    # Posts
    "CreatePostRequest",
    "PostOut",
    "TrendingTagOut",
    "UpdatePostRequest",
    # Comments
    "CommentOut",
    "CreateCommentRequest",
    "UpdateCommentRequest",
    # Stories
    "CreateStoryRequest",
    "StoryGroupOut",
    "StoryOut",
    "StoryViewerOut",
    # Messages
    "ConversationOut",
    "EditMessageRequest",
    "MessageOut",
    "SendMessageRequest",
    # Notifications
    "NotificationOut",
    "NotificationPreferencesOut",
    "UpdatePreferencesRequest",
]
