"""Feed aggregate functions

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17

Installs the SQL functions used by the primary feed source:
- get_personalized_feed(current_user_id, limit_count, offset_count)
- get_explore_feed(current_user_id, limit_count, offset_count)
- get_trending_hashtags(limit_count, since)

The API probes pg_proc for all three at startup and falls back to ORM
composition when any is missing. The functions return post ids only; the API
re-applies its visibility filter and hydrates the posts itself.
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: str | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ==========================================================================
    # Home feed: own posts + public/followers posts of followed authors
    # ==========================================================================
    op.execute("""
        CREATE OR REPLACE FUNCTION get_personalized_feed(
            current_user_id uuid,
            limit_count integer DEFAULT 20,
            offset_count integer DEFAULT 0
        )
        RETURNS TABLE (post_id uuid)
        LANGUAGE sql
        STABLE
        AS $$
            SELECT p.id
            FROM posts p
            JOIN users u ON u.id = p.author_id
            WHERE p.is_deleted = false
              AND u.is_active = true
              AND (
                    p.author_id = current_user_id
                 OR (
                        p.visibility IN ('public', 'followers')
                    AND EXISTS (
                        SELECT 1 FROM follows f
                        WHERE f.follower_id = current_user_id
                          AND f.following_id = p.author_id
                    )
                 )
              )
              AND NOT EXISTS (
                    SELECT 1 FROM blocks b
                    WHERE (b.blocker_id = current_user_id AND b.blocked_id = p.author_id)
                       OR (b.blocker_id = p.author_id AND b.blocked_id = current_user_id)
              )
            ORDER BY p.created_at DESC, p.id DESC
            LIMIT limit_count
            OFFSET offset_count
        $$
    """)

    # ==========================================================================
    # Explore feed: public posts by like count
    # ==========================================================================
    op.execute("""
        CREATE OR REPLACE FUNCTION get_explore_feed(
            current_user_id uuid,
            limit_count integer DEFAULT 20,
            offset_count integer DEFAULT 0
        )
        RETURNS TABLE (post_id uuid)
        LANGUAGE sql
        STABLE
        AS $$
            SELECT p.id
            FROM posts p
            JOIN users u ON u.id = p.author_id
            LEFT JOIN (
                SELECT l.post_id AS id, count(*) AS n
                FROM post_likes l
                GROUP BY l.post_id
            ) likes ON likes.id = p.id
            WHERE p.is_deleted = false
              AND u.is_active = true
              AND p.visibility = 'public'
              AND (
                    current_user_id IS NULL
                 OR NOT EXISTS (
                        SELECT 1 FROM blocks b
                        WHERE (b.blocker_id = current_user_id AND b.blocked_id = p.author_id)
                           OR (b.blocker_id = p.author_id AND b.blocked_id = current_user_id)
                 )
              )
            ORDER BY coalesce(likes.n, 0) DESC, p.created_at DESC, p.id DESC
            LIMIT limit_count
            OFFSET offset_count
        $$
    """)

    # ==========================================================================
    # Trending hashtags over public posts since a cutoff
    # ==========================================================================
    op.execute("""
        CREATE OR REPLACE FUNCTION get_trending_hashtags(
            limit_count integer DEFAULT 10,
            since timestamptz DEFAULT now() - interval '24 hours'
        )
        RETURNS TABLE (tag text, post_count bigint)
        LANGUAGE sql
        STABLE
        AS $$
            SELECT t.tag, count(DISTINCT p.id) AS post_count
            FROM posts p
            JOIN users u ON u.id = p.author_id
            CROSS JOIN LATERAL jsonb_array_elements_text(p.tags) AS t(tag)
            WHERE p.is_deleted = false
              AND u.is_active = true
              AND p.visibility = 'public'
              AND p.created_at >= since
            GROUP BY t.tag
            ORDER BY post_count DESC, t.tag ASC
            LIMIT limit_count
        $$
    """)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS get_trending_hashtags(integer, timestamptz)")
    op.execute("DROP FUNCTION IF EXISTS get_explore_feed(uuid, integer, integer)")
    op.execute("DROP FUNCTION IF EXISTS get_personalized_feed(uuid, integer, integer)")
