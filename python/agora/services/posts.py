"""Post service layer.

Posts, likes, bookmarks, and shares.
Routes may not contain domain logic or raw DB access - they must call these functions.

Read-path errors:
- Deleted post or deactivated author: 404 (E_POST_NOT_FOUND)
- Block edge between viewer and author: 403 (E_BLOCKED)
- Visibility rule not met: 403 (E_NOT_VISIBLE)
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from agora.auth.permissions import (
    is_blocked_between,
    not_block_related,
    post_visibility_allows,
    readable_post_clause,
)
from agora.db.handles import DataHandle
from agora.db.models import (
    Bookmark,
    Comment,
    NotificationType,
    Post,
    PostLike,
    ReferenceType,
    Share,
    User,
)
from agora.db.session import transaction
from agora.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from agora.logging import get_logger
from agora.schemas.common import Page, UserSummary
from agora.schemas.post import CreatePostRequest, PostOut, UpdatePostRequest
from agora.services.notifications import notify, notify_mentions
from agora.services.redact import safe_kv
from agora.services.store import insert_or_reject_duplicate
from agora.services.text import extract_hashtags, normalize_tags
from agora.services.users import load_user_summaries, to_summary

logger = get_logger(__name__)


# =============================================================================
# Hydration
# =============================================================================


def _count_by_post(db: Session, column, post_ids: list[UUID], *criteria) -> dict[UUID, int]:
    rows = db.execute(
        select(column, func.count()).where(column.in_(post_ids), *criteria).group_by(column)
    ).all()
    return {post_id: int(n) for post_id, n in rows}


def hydrate_posts(db: Session, viewer_id: UUID | None, posts: list[Post]) -> list[PostOut]:
    """Attach authors, engagement counts, and viewer flags to posts.

    Runs a fixed number of queries regardless of how many posts are given.
    Order of the input is preserved.
    """
    if not posts:
        return []

    post_ids = [p.id for p in posts]
    authors = load_user_summaries(db, {p.author_id for p in posts})
    likes = _count_by_post(db, PostLike.post_id, post_ids)
    comments = _count_by_post(
        db, Comment.post_id, post_ids, Comment.is_deleted == False  # noqa: E712
    )
    shares = _count_by_post(db, Share.post_id, post_ids)

    liked: set[UUID] = set()
    bookmarked: set[UUID] = set()
    if viewer_id is not None:
        liked = set(
            db.execute(
                select(PostLike.post_id).where(
                    PostLike.post_id.in_(post_ids), PostLike.user_id == viewer_id
                )
            )
            .scalars()
            .all()
        )
        bookmarked = set(
            db.execute(
                select(Bookmark.post_id).where(
                    Bookmark.post_id.in_(post_ids), Bookmark.user_id == viewer_id
                )
            )
            .scalars()
            .all()
        )

    return [
        PostOut(
            id=p.id,
            author=authors[p.author_id],
            content=p.content,
            media_urls=list(p.media_urls or []),
            visibility=p.visibility,
            tags=list(p.tags or []),
            created_at=p.created_at,
            updated_at=p.updated_at,
            like_count=likes.get(p.id, 0),
            comment_count=comments.get(p.id, 0),
            share_count=shares.get(p.id, 0),
            is_liked=p.id in liked,
            is_bookmarked=p.id in bookmarked,
        )
        for p in posts
    ]


def load_readable_post(db: Session, viewer_id: UUID | None, post_id: UUID) -> Post:
    """Load a post the viewer may read.

    Raises:
        NotFoundError: If the post does not exist, is deleted, or its author is inactive.
        ForbiddenError: If a block exists or the visibility rule is not met.
    """
    post = db.get(Post, post_id)
    if post is None or post.is_deleted:
        raise NotFoundError(ApiErrorCode.E_POST_NOT_FOUND, "Post not found")

    author = db.get(User, post.author_id)
    if author is None or not author.is_active:
        raise NotFoundError(ApiErrorCode.E_POST_NOT_FOUND, "Post not found")

    if viewer_id is not None and viewer_id != post.author_id:
        if is_blocked_between(db, viewer_id, post.author_id):
            raise ForbiddenError(ApiErrorCode.E_BLOCKED, "You cannot view this post")

    if not post_visibility_allows(db, viewer_id, post):
        raise ForbiddenError(ApiErrorCode.E_NOT_VISIBLE, "You do not have access to this post")

    return post


def _load_own_post(db: Session, caller_id: UUID, post_id: UUID) -> Post:
    post = db.get(Post, post_id)
    if post is None or post.is_deleted:
        raise NotFoundError(ApiErrorCode.E_POST_NOT_FOUND, "Post not found")
    if post.author_id != caller_id:
        raise ForbiddenError(ApiErrorCode.E_NOT_AUTHOR, "Only the author can modify this post")
    return post


# =============================================================================
# Posts
# =============================================================================


def create_post(handle: DataHandle, request: CreatePostRequest) -> PostOut:
    """Create a post and notify mentioned users.

    Tags are the post's hashtags plus any explicit tags, lower-cased.

    Raises:
        InvalidRequestError: If the post has neither content nor media.
    """
    caller_id = handle.require_caller()
    db = handle.db

    content = (request.content or "").strip() or None
    if content is None and not request.media_urls:
        raise InvalidRequestError(
            ApiErrorCode.E_CONTENT_REQUIRED, "Post must have content or media"
        )

    with transaction(db):
        post = Post(
            author_id=caller_id,
            content=content,
            media_urls=list(request.media_urls),
            visibility=request.visibility,
            tags=normalize_tags(content, request.tags),
        )
        db.add(post)

    logger.info(
        "post_created",
        **safe_kv(
            post_id=str(post.id),
            visibility=post.visibility,
            content_chars=len(content or ""),
            media_count=len(post.media_urls),
        ),
    )

    notify_mentions(
        handle,
        actor_id=caller_id,
        text=content,
        reference_type=ReferenceType.post.value,
        reference_id=post.id,
        readable_post_id=post.id,
    )

    return hydrate_posts(db, caller_id, [post])[0]


def get_post(handle: DataHandle, post_id: UUID) -> PostOut:
    """Get one post the caller may read."""
    post = load_readable_post(handle.db, handle.caller_id, post_id)
    return hydrate_posts(handle.db, handle.caller_id, [post])[0]


def list_user_posts(handle: DataHandle, user_id: UUID, page: Page) -> list[PostOut]:
    """List a user's posts visible to the caller, newest first.

    Raises:
        NotFoundError: If the user does not exist or is deactivated.
    """
    db = handle.db
    author = db.get(User, user_id)
    if author is None or not author.is_active:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")

    query = (
        select(Post)
        .join(User, User.id == Post.author_id)
        .where(Post.author_id == user_id, readable_post_clause(handle.caller_id))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(page.limit)
        .offset(page.offset)
    )
    posts = list(db.execute(query).scalars().all())
    return hydrate_posts(db, handle.caller_id, posts)


def update_post(handle: DataHandle, post_id: UUID, request: UpdatePostRequest) -> PostOut:
    """Edit the caller's post.

    Explicit tags survive a content edit unless new tags are given.

    Raises:
        NotFoundError: If the post does not exist or is deleted.
        ForbiddenError: If the caller is not the author.
        InvalidRequestError: If the edit leaves the post with no content and no media.
    """
    caller_id = handle.require_caller()
    db = handle.db
    fields = request.model_fields_set

    with transaction(db):
        post = _load_own_post(db, caller_id, post_id)
        old_hashtags = set(extract_hashtags(post.content))
        explicit = [t for t in post.tags if t not in old_hashtags]

        if "content" in fields:
            content = (request.content or "").strip() or None
            if content is None and not post.media_urls:
                raise InvalidRequestError(
                    ApiErrorCode.E_CONTENT_REQUIRED, "Post must have content or media"
                )
            post.content = content
        if "visibility" in fields and request.visibility is not None:
            post.visibility = request.visibility
        if "tags" in fields:
            explicit = request.tags or []
        post.tags = normalize_tags(post.content, explicit)
        post.updated_at = datetime.now(UTC)

    return hydrate_posts(db, caller_id, [post])[0]


def delete_post(handle: DataHandle, post_id: UUID) -> None:
    """Soft-delete the caller's post.

    Raises:
        NotFoundError: If the post does not exist or is already deleted.
        ForbiddenError: If the caller is not the author.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        post = _load_own_post(db, caller_id, post_id)
        post.is_deleted = True
        post.deleted_at = datetime.now(UTC)

    logger.info("post_deleted", post_id=str(post_id))


# =============================================================================
# Likes
# =============================================================================


def like_post(handle: DataHandle, post_id: UUID) -> None:
    """Like a post and notify its author (never for one's own post).

    Raises:
        NotFoundError / ForbiddenError: If the caller cannot read the post.
        ConflictError: If the caller already liked it.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        post = load_readable_post(db, caller_id, post_id)
        insert_or_reject_duplicate(
            db,
            PostLike(post_id=post.id, user_id=caller_id),
            ApiErrorCode.E_ALREADY_LIKED,
            "Post already liked",
        )

    notify(
        handle,
        recipient_id=post.author_id,
        actor_id=caller_id,
        notification_type=NotificationType.like,
        reference_type=ReferenceType.post.value,
        reference_id=post.id,
    )


def unlike_post(handle: DataHandle, post_id: UUID) -> None:
    """Remove the caller's like.

    Raises:
        NotFoundError: If the caller has not liked the post.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        result = db.execute(
            delete(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == caller_id)
        )
        if not result.rowcount:
            raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Like not found")


def list_post_likes(handle: DataHandle, post_id: UUID, page: Page) -> list[UserSummary]:
    """Users who liked a readable post, most recent first."""
    db = handle.db
    load_readable_post(db, handle.caller_id, post_id)

    query = (
        select(User)
        .join(PostLike, PostLike.user_id == User.id)
        .where(
            PostLike.post_id == post_id,
            User.is_active == True,  # noqa: E712
            not_block_related(User.id, handle.caller_id),
        )
        .order_by(PostLike.created_at.desc(), User.id.desc())
        .limit(page.limit)
        .offset(page.offset)
    )
    return [to_summary(u) for u in db.execute(query).scalars().all()]


# =============================================================================
# Bookmarks
# =============================================================================


def bookmark_post(handle: DataHandle, post_id: UUID) -> None:
    """Bookmark a readable post.

    Raises:
        ConflictError: If the post is already bookmarked.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        load_readable_post(db, caller_id, post_id)
        insert_or_reject_duplicate(
            db,
            Bookmark(post_id=post_id, user_id=caller_id),
            ApiErrorCode.E_ALREADY_BOOKMARKED,
            "Post already bookmarked",
        )


def unbookmark_post(handle: DataHandle, post_id: UUID) -> None:
    """Remove a bookmark.

    Raises:
        NotFoundError: If the post is not bookmarked.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        result = db.execute(
            delete(Bookmark).where(Bookmark.post_id == post_id, Bookmark.user_id == caller_id)
        )
        if not result.rowcount:
            raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Bookmark not found")


def list_bookmarks(handle: DataHandle, page: Page) -> list[PostOut]:
    """Caller's bookmarked posts that are still readable, most recently saved first."""
    caller_id = handle.require_caller()
    db = handle.db

    query = (
        select(Post)
        .join(Bookmark, Bookmark.post_id == Post.id)
        .join(User, User.id == Post.author_id)
        .where(Bookmark.user_id == caller_id, readable_post_clause(caller_id))
        .order_by(Bookmark.created_at.desc(), Post.id.desc())
        .limit(page.limit)
        .offset(page.offset)
    )
    posts = list(db.execute(query).scalars().all())
    return hydrate_posts(db, caller_id, posts)


# =============================================================================
# Shares
# =============================================================================


def share_post(handle: DataHandle, post_id: UUID) -> None:
    """Share a readable post and notify its author.

    Raises:
        ConflictError: If the caller already shared the post.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        post = load_readable_post(db, caller_id, post_id)
        insert_or_reject_duplicate(
            db,
            Share(post_id=post.id, user_id=caller_id),
            ApiErrorCode.E_ALREADY_SHARED,
            "Post already shared",
        )

    notify(
        handle,
        recipient_id=post.author_id,
        actor_id=caller_id,
        notification_type=NotificationType.share,
        reference_type=ReferenceType.post.value,
        reference_id=post.id,
    )
