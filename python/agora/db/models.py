"""SQLAlchemy ORM models for Agora.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Enumerated columns are plain text guarded by CHECK constraints so the same
models run against Postgres and SQLite. Timestamps and ids get Python-side
defaults; the migrations add the matching server defaults.
"""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from agora.db.types import JSONList, UTCDateTime, utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class Visibility(str, PyEnum):
    """Who may read a post.

    States:
        public: Anyone, including anonymous callers
        followers: The author and accounts following the author
        private: The author only
    """

    public = "public"
    followers = "followers"
    private = "private"


class MediaType(str, PyEnum):
    """Story media kinds."""

    image = "image"
    video = "video"


class NotificationType(str, PyEnum):
    """Events that produce a notification."""

    like = "like"
    comment = "comment"
    comment_like = "comment_like"
    follow = "follow"
    mention = "mention"
    share = "share"
    message = "message"


class ReferenceType(str, PyEnum):
    """Kind of entity a notification points at."""

    post = "post"
    comment = "comment"
    user = "user"
    message = "message"


def _in_check(column: str, enum: type[PyEnum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum)
    return f"{column} IN ({values})"


# =============================================================================
# Users and the social graph
# =============================================================================


class User(Base):
    """User profile model.

    The user ID matches the Supabase auth user ID (sub claim). Deleted
    accounts are kept as scrubbed, inactive rows.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("length(display_name) <= 50", name="ck_users_display_name_length"),
        CheckConstraint("length(bio) <= 500", name="ck_users_bio_length"),
    )


class Follow(Base):
    """Directed follow edge: follower_id follows following_id."""

    __tablename__ = "follows"

    follower_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    following_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
        Index("ix_follows_following_id", "following_id"),
    )


class Block(Base):
    """Directed block edge: blocker_id blocks blocked_id."""

    __tablename__ = "blocks"

    blocker_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    blocked_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("blocker_id <> blocked_id", name="ck_blocks_not_self"),
        Index("ix_blocks_blocked_id", "blocked_id"),
    )


# =============================================================================
# Content
# =============================================================================


class Post(Base):
    """Post model. Content or media (or both) must be present."""

    __tablename__ = "posts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    author_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_urls: Mapped[list[str]] = mapped_column(JSONList, nullable=False, default=list)
    visibility: Mapped[str] = mapped_column(Text, nullable=False, default=Visibility.public.value)
    tags: Mapped[list[str]] = mapped_column(JSONList, nullable=False, default=list)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_check("visibility", Visibility), name="ck_posts_visibility"),
        CheckConstraint("length(content) <= 2000", name="ck_posts_content_length"),
        Index("ix_posts_author_created", "author_id", "created_at"),
        Index("ix_posts_created_at", "created_at"),
    )


class Comment(Base):
    """Comment on a post; parent_id set for replies."""

    __tablename__ = "comments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    post_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "length(content) BETWEEN 1 AND 1000",
            name="ck_comments_content_length",
        ),
        Index("ix_comments_post_created", "post_id", "created_at"),
        Index("ix_comments_parent_id", "parent_id"),
    )


class PostLike(Base):
    """A user's like on a post."""

    __tablename__ = "post_likes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    post_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="uq_post_likes_post_user"),
        Index("ix_post_likes_user_created", "user_id", "created_at"),
    )


class CommentLike(Base):
    """A user's like on a comment."""

    __tablename__ = "comment_likes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    comment_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_comment_likes_comment_user"),
    )


class Bookmark(Base):
    """A post saved by a user (visible only to that user)."""

    __tablename__ = "bookmarks"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    post_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_bookmarks_post_user"),)


class Share(Base):
    """A user's share of a post."""

    __tablename__ = "shares"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    post_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_shares_post_user"),)


class Story(Base):
    """Ephemeral media item, readable until expires_at."""

    __tablename__ = "stories"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    author_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    media_url: Mapped[str] = mapped_column(Text, nullable=False)
    media_type: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(_in_check("media_type", MediaType), name="ck_stories_media_type"),
        CheckConstraint("length(caption) <= 200", name="ck_stories_caption_length"),
        CheckConstraint("expires_at > created_at", name="ck_stories_expiry_after_creation"),
        Index("ix_stories_author_expires", "author_id", "expires_at"),
    )


class StoryView(Base):
    """First-and-latest view of a story by a viewer."""

    __tablename__ = "story_views"

    story_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("stories.id", ondelete="CASCADE"), primary_key=True
    )
    viewer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    viewed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# =============================================================================
# Notifications and messages
# =============================================================================


class Notification(Base):
    """Persisted record that an actor did something relevant to a recipient."""

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    recipient_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    reference_type: Mapped[str] = mapped_column(Text, nullable=False)
    reference_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(_in_check("type", NotificationType), name="ck_notifications_type"),
        CheckConstraint(
            _in_check("reference_type", ReferenceType),
            name="ck_notifications_reference_type",
        ),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
    )


class NotificationPreference(Base):
    """Per-user opt-outs, one flag per notification type.

    A missing row means every type is enabled.
    """

    __tablename__ = "notification_preferences"

    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    like: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    comment_like: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    follow: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    mention: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    share: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    message: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def allows(self, notification_type: str) -> bool:
        """Whether this user accepts notifications of the given type."""
        return bool(getattr(self, notification_type, True))


class Message(Base):
    """Direct message between two users."""

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    sender_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("sender_id <> recipient_id", name="ck_messages_not_self"),
        CheckConstraint(
            "length(content) BETWEEN 1 AND 5000",
            name="ck_messages_content_length",
        ),
        Index("ix_messages_pair_created", "sender_id", "recipient_id", "created_at"),
        Index("ix_messages_recipient_unread", "recipient_id", "is_read"),
    )
