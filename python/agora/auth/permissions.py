"""Authorization predicates for visibility and access control.

These predicates are the single source of truth for all visibility logic.
They are used by services and both feed sources to enforce access control
consistently.

All functions:
- Accept an explicit SQLAlchemy Session (or build a reusable SQL clause)
- Return booleans, id sets, or SQL expressions only (no HTTP exceptions)

Post Visibility (can_read_post / readable_post_clause):
- The author can always read their own post
- public: anyone, including anonymous viewers
- followers: viewers who follow the author
- private: the author only
- Never readable: soft-deleted posts, posts by inactive authors, and posts
  whose author and viewer have a block edge in either direction

Block Symmetry:
- A block from A to B hides content and prevents interaction in BOTH directions.
"""

from uuid import UUID

from sqlalchemy import ColumnElement, and_, exists, or_, select, true, union
from sqlalchemy.orm import Session

from agora.db.models import Block, Follow, Post, User, Visibility


def is_blocked_between(session: Session, user_a: UUID, user_b: UUID) -> bool:
    """Check whether a block edge exists in either direction between two users."""
    query = select(
        exists().where(
            or_(
                and_(Block.blocker_id == user_a, Block.blocked_id == user_b),
                and_(Block.blocker_id == user_b, Block.blocked_id == user_a),
            )
        )
    )
    return bool(session.execute(query).scalar())


def is_following(session: Session, follower_id: UUID, following_id: UUID) -> bool:
    """Check whether follower_id follows following_id."""
    query = select(
        exists().where(
            Follow.follower_id == follower_id,
            Follow.following_id == following_id,
        )
    )
    return bool(session.execute(query).scalar())


def block_related_ids_query(viewer_id: UUID):
    """SELECT of user ids with a block edge to or from the viewer."""
    return union(
        select(Block.blocked_id).where(Block.blocker_id == viewer_id),
        select(Block.blocker_id).where(Block.blocked_id == viewer_id),
    )


def block_related_ids(session: Session, viewer_id: UUID) -> set[UUID]:
    """Ids of users the viewer blocked or who blocked the viewer."""
    return set(session.execute(block_related_ids_query(viewer_id)).scalars().all())


def not_block_related(column, viewer_id: UUID | None) -> ColumnElement[bool]:
    """Clause excluding rows whose `column` is block-related to the viewer."""
    if viewer_id is None:
        return true()
    return column.not_in(block_related_ids_query(viewer_id))


def visibility_clause(viewer_id: UUID | None) -> ColumnElement[bool]:
    """Clause implementing the public/followers/private rule for Post rows."""
    if viewer_id is None:
        return Post.visibility == Visibility.public.value

    follows_author = exists().where(
        Follow.follower_id == viewer_id,
        Follow.following_id == Post.author_id,
    )
    return or_(
        Post.author_id == viewer_id,
        Post.visibility == Visibility.public.value,
        and_(Post.visibility == Visibility.followers.value, follows_author),
    )


def readable_post_clause(viewer_id: UUID | None) -> ColumnElement[bool]:
    """Full readability clause for Post rows.

    The query must join User on Post.author_id.
    """
    return and_(
        Post.is_deleted == False,  # noqa: E712
        User.is_active == True,  # noqa: E712
        visibility_clause(viewer_id),
        not_block_related(Post.author_id, viewer_id),
    )


def readable_post_ids(
    session: Session, viewer_id: UUID | None, post_ids: list[UUID]
) -> set[UUID]:
    """Return the subset of post_ids the viewer may read.

    Implementation constraint: executes exactly ONE SELECT query.
    Empty list input: return set() without executing any query.
    """
    if not post_ids:
        return set()

    query = (
        select(Post.id)
        .join(User, User.id == Post.author_id)
        .where(Post.id.in_(post_ids), readable_post_clause(viewer_id))
    )
    return set(session.execute(query).scalars().all())


def can_read_post(session: Session, viewer_id: UUID | None, post_id: UUID) -> bool:
    """Check if the viewer may read a post.

    Returns False if post_id does not exist.
    """
    return post_id in readable_post_ids(session, viewer_id, [post_id])


def post_visibility_allows(session: Session, viewer_id: UUID | None, post: Post) -> bool:
    """Visibility rule alone (ignores deletion, author state, and blocks)."""
    if viewer_id is not None and post.author_id == viewer_id:
        return True
    if post.visibility == Visibility.public.value:
        return True
    if post.visibility == Visibility.followers.value and viewer_id is not None:
        return is_following(session, viewer_id, post.author_id)
    return False

