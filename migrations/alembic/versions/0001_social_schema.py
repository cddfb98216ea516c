"""Social schema - users, graph, posts, engagement, stories, notifications, messages

Revision ID: 0001
Revises:
Create Date: 2026-10-17

Creates every table the API reads and writes. Enumerated columns are text
guarded by CHECK constraints; ids default to gen_random_uuid() except
users.id, which is the Supabase auth subject.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.UUID(),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.TIMESTAMP(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _user_fk(column: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint([column], ["users.id"], ondelete="CASCADE")


def _flag(name: str, default: bool) -> sa.Column:
    return sa.Column(
        name, sa.Boolean(), server_default="true" if default else "false", nullable=False
    )


def upgrade() -> None:
    # Enable pgcrypto extension for gen_random_uuid()
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # users table
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        _flag("is_private", False),
        _flag("is_active", True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("deleted_at", nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.CheckConstraint("length(display_name) <= 50", name="ck_users_display_name_length"),
        sa.CheckConstraint("length(bio) <= 500", name="ck_users_bio_length"),
    )

    # ==========================================================================
    # follows / blocks (directed edges)
    # ==========================================================================
    op.create_table(
        "follows",
        sa.Column("follower_id", sa.UUID(), nullable=False),
        sa.Column("following_id", sa.UUID(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("follower_id", "following_id"),
        _user_fk("follower_id"),
        _user_fk("following_id"),
        sa.CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
    )
    op.create_index("ix_follows_following_id", "follows", ["following_id"])

    op.create_table(
        "blocks",
        sa.Column("blocker_id", sa.UUID(), nullable=False),
        sa.Column("blocked_id", sa.UUID(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("blocker_id", "blocked_id"),
        _user_fk("blocker_id"),
        _user_fk("blocked_id"),
        sa.CheckConstraint("blocker_id <> blocked_id", name="ck_blocks_not_self"),
    )
    op.create_index("ix_blocks_blocked_id", "blocks", ["blocked_id"])

    # ==========================================================================
    # posts table
    # ==========================================================================
    op.create_table(
        "posts",
        _uuid_pk(),
        sa.Column("author_id", sa.UUID(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column(
            "media_urls",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("visibility", sa.Text(), server_default="public", nullable=False),
        sa.Column(
            "tags",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        _flag("is_deleted", False),
        _timestamp("deleted_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("author_id"),
        sa.CheckConstraint(
            "visibility IN ('public', 'followers', 'private')",
            name="ck_posts_visibility",
        ),
        sa.CheckConstraint("length(content) <= 2000", name="ck_posts_content_length"),
    )
    op.create_index("ix_posts_author_created", "posts", ["author_id", "created_at"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])
    op.create_index("ix_posts_tags", "posts", ["tags"], postgresql_using="gin")

    # ==========================================================================
    # comments table
    # ==========================================================================
    op.create_table(
        "comments",
        _uuid_pk(),
        sa.Column("post_id", sa.UUID(), nullable=False),
        sa.Column("author_id", sa.UUID(), nullable=False),
        sa.Column("parent_id", sa.UUID(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        _flag("is_deleted", False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_id"], ["comments.id"], ondelete="CASCADE"),
        _user_fk("author_id"),
        sa.CheckConstraint(
            "length(content) BETWEEN 1 AND 1000",
            name="ck_comments_content_length",
        ),
    )
    op.create_index("ix_comments_post_created", "comments", ["post_id", "created_at"])
    op.create_index("ix_comments_parent_id", "comments", ["parent_id"])

    # ==========================================================================
    # engagement tables (one row per subject/user pair)
    # ==========================================================================
    for table, subject, parent in (
        ("post_likes", "post_id", "posts"),
        ("comment_likes", "comment_id", "comments"),
        ("bookmarks", "post_id", "posts"),
        ("shares", "post_id", "posts"),
    ):
        op.create_table(
            table,
            _uuid_pk(),
            sa.Column(subject, sa.UUID(), nullable=False),
            sa.Column("user_id", sa.UUID(), nullable=False),
            _timestamp("created_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.ForeignKeyConstraint([subject], [f"{parent}.id"], ondelete="CASCADE"),
            _user_fk("user_id"),
            sa.UniqueConstraint(
                subject, "user_id", name=f"uq_{table}_{subject.removesuffix('_id')}_user"
            ),
        )
    op.create_index("ix_post_likes_user_created", "post_likes", ["user_id", "created_at"])

    # ==========================================================================
    # stories / story_views
    # ==========================================================================
    op.create_table(
        "stories",
        _uuid_pk(),
        sa.Column("author_id", sa.UUID(), nullable=False),
        sa.Column("media_url", sa.Text(), nullable=False),
        sa.Column("media_type", sa.Text(), nullable=False),
        sa.Column("caption", sa.Text(), nullable=True),
        _flag("is_deleted", False),
        _timestamp("created_at"),
        sa.Column(
            "expires_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now() + interval '24 hours'"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("author_id"),
        sa.CheckConstraint("media_type IN ('image', 'video')", name="ck_stories_media_type"),
        sa.CheckConstraint("length(caption) <= 200", name="ck_stories_caption_length"),
        sa.CheckConstraint("expires_at > created_at", name="ck_stories_expiry_after_creation"),
    )
    op.create_index("ix_stories_author_expires", "stories", ["author_id", "expires_at"])

    op.create_table(
        "story_views",
        sa.Column("story_id", sa.UUID(), nullable=False),
        sa.Column("viewer_id", sa.UUID(), nullable=False),
        _timestamp("viewed_at"),
        sa.PrimaryKeyConstraint("story_id", "viewer_id"),
        sa.ForeignKeyConstraint(["story_id"], ["stories.id"], ondelete="CASCADE"),
        _user_fk("viewer_id"),
    )

    # ==========================================================================
    # notifications / notification_preferences
    # ==========================================================================
    op.create_table(
        "notifications",
        _uuid_pk(),
        sa.Column("recipient_id", sa.UUID(), nullable=False),
        sa.Column("sender_id", sa.UUID(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("reference_type", sa.Text(), nullable=False),
        sa.Column("reference_id", sa.UUID(), nullable=False),
        _flag("is_read", False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("recipient_id"),
        _user_fk("sender_id"),
        sa.CheckConstraint(
            "type IN ('like', 'comment', 'comment_like', 'follow', 'mention', 'share', 'message')",
            name="ck_notifications_type",
        ),
        sa.CheckConstraint(
            "reference_type IN ('post', 'comment', 'user', 'message')",
            name="ck_notifications_reference_type",
        ),
    )
    op.create_index(
        "ix_notifications_recipient_created", "notifications", ["recipient_id", "created_at"]
    )

    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.UUID(), nullable=False),
        _flag("like", True),
        _flag("comment", True),
        _flag("comment_like", True),
        _flag("follow", True),
        _flag("mention", True),
        _flag("share", True),
        _flag("message", True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("user_id"),
        _user_fk("user_id"),
    )

    # ==========================================================================
    # messages table
    # ==========================================================================
    op.create_table(
        "messages",
        _uuid_pk(),
        sa.Column("sender_id", sa.UUID(), nullable=False),
        sa.Column("recipient_id", sa.UUID(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _flag("is_read", False),
        _flag("is_edited", False),
        _flag("is_deleted", False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        _user_fk("sender_id"),
        _user_fk("recipient_id"),
        sa.CheckConstraint("sender_id <> recipient_id", name="ck_messages_not_self"),
        sa.CheckConstraint(
            "length(content) BETWEEN 1 AND 5000",
            name="ck_messages_content_length",
        ),
    )
    op.create_index(
        "ix_messages_pair_created", "messages", ["sender_id", "recipient_id", "created_at"]
    )
    op.create_index("ix_messages_recipient_unread", "messages", ["recipient_id", "is_read"])


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_table("messages")
    op.drop_table("notification_preferences")
    op.drop_table("notifications")
    op.drop_table("story_views")
    op.drop_table("stories")
    op.drop_table("shares")
    op.drop_table("bookmarks")
    op.drop_table("comment_likes")
    op.drop_table("post_likes")
    op.drop_table("comments")
    op.drop_table("posts")
    op.drop_table("blocks")
    op.drop_table("follows")
    op.drop_table("users")

    # Note: We don't drop pgcrypto extension as it may be used by other things
