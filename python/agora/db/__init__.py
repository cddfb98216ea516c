"""Database module for Agora.

Provides engine creation, session management, identity-bound handles,
transaction helpers, and ORM models.
"""

from agora.db.engine import create_db_engine, get_engine
from agora.db.handles import DataHandle, HandleRole, open_service_handle
from agora.db.models import (
    Base,
    Block,
    Bookmark,
    Comment,
    CommentLike,
    Follow,
    MediaType,
    Message,
    Notification,
    NotificationPreference,
    NotificationType,
    Post,
    PostLike,
    ReferenceType,
    Share,
    Story,
    StoryView,
    User,
    Visibility,
)
from agora.db.session import create_session_factory, get_session_factory, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "create_session_factory",
    "get_session_factory",
    "transaction",
    # Handles
    "DataHandle",
    "HandleRole",
    "open_service_handle",
    # Base
    "Base",
    # Enums
    "Visibility",
    "MediaType",
    "NotificationType",
    "ReferenceType",
    # Models
    "User",
    "Follow",
    "Block",
    "Post",
    "Comment",
    "PostLike",
    "CommentLike",
    "Bookmark",
    "Share",
    "Story",
    "StoryView",
    "Notification",
    "NotificationPreference",
    "Message",
]
