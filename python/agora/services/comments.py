"""Comment service layer.

Comments and replies on posts, plus comment likes. A comment is readable when
its post is readable by the viewer; comments by accounts block-related to the
viewer are hidden from listings.
"""

from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from agora.auth.permissions import is_blocked_between, not_block_related
from agora.db.handles import DataHandle
from agora.db.models import Comment, CommentLike, NotificationType, ReferenceType, User
from agora.db.session import transaction
from agora.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from agora.logging import get_logger
from agora.schemas.comment import CommentOut, CreateCommentRequest, UpdateCommentRequest
from agora.schemas.common import Page
from agora.services.notifications import notify, notify_mentions
from agora.services.posts import load_readable_post
from agora.services.redact import safe_kv
from agora.services.store import insert_or_reject_duplicate
from agora.services.users import load_user_summaries

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 1000


def _hydrate(db: Session, viewer_id: UUID | None, comments: list[Comment]) -> list[CommentOut]:
    if not comments:
        return []

    ids = [c.id for c in comments]
    authors = load_user_summaries(db, {c.author_id for c in comments})
    like_counts = dict(
        db.execute(
            select(CommentLike.comment_id, func.count())
            .where(CommentLike.comment_id.in_(ids))
            .group_by(CommentLike.comment_id)
        ).all()
    )
    reply_counts = dict(
        db.execute(
            select(Comment.parent_id, func.count())
            .where(Comment.parent_id.in_(ids), Comment.is_deleted == False)  # noqa: E712
            .group_by(Comment.parent_id)
        ).all()
    )
    liked: set[UUID] = set()
    if viewer_id is not None:
        liked = set(
            db.execute(
                select(CommentLike.comment_id).where(
                    CommentLike.comment_id.in_(ids), CommentLike.user_id == viewer_id
                )
            )
            .scalars()
            .all()
        )

    return [
        CommentOut(
            id=c.id,
            post_id=c.post_id,
            parent_id=c.parent_id,
            author=authors[c.author_id],
            content=c.content,
            created_at=c.created_at,
            updated_at=c.updated_at,
            like_count=int(like_counts.get(c.id, 0)),
            reply_count=int(reply_counts.get(c.id, 0)),
            is_liked=c.id in liked,
        )
        for c in comments
    ]


def _clean_content(content: str) -> str:
    text = content.strip()
    if not text:
        raise InvalidRequestError(ApiErrorCode.E_CONTENT_REQUIRED, "Comment cannot be empty")
    if len(text) > MAX_COMMENT_LENGTH:
        raise InvalidRequestError(
            ApiErrorCode.E_CONTENT_TOO_LONG,
            f"Comment must be at most {MAX_COMMENT_LENGTH} characters",
        )
    return text


def _load_comment(db: Session, comment_id: UUID) -> Comment:
    comment = db.get(Comment, comment_id)
    if comment is None or comment.is_deleted:
        raise NotFoundError(ApiErrorCode.E_COMMENT_NOT_FOUND, "Comment not found")
    return comment


def _load_readable_comment(db: Session, viewer_id: UUID | None, comment_id: UUID) -> Comment:
    comment = _load_comment(db, comment_id)
    load_readable_post(db, viewer_id, comment.post_id)
    return comment


def _load_own_comment(db: Session, caller_id: UUID, comment_id: UUID) -> Comment:
    comment = _load_comment(db, comment_id)
    if comment.author_id != caller_id:
        raise ForbiddenError(ApiErrorCode.E_NOT_AUTHOR, "Only the author can modify this comment")
    return comment


def _list(db: Session, viewer_id: UUID | None, page: Page, *criteria) -> list[CommentOut]:
    query = (
        select(Comment)
        .join(User, User.id == Comment.author_id)
        .where(
            *criteria,
            Comment.is_deleted == False,  # noqa: E712
            User.is_active == True,  # noqa: E712
            not_block_related(Comment.author_id, viewer_id),
        )
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .limit(page.limit)
        .offset(page.offset)
    )
    return _hydrate(db, viewer_id, list(db.execute(query).scalars().all()))


# =============================================================================
# Comments
# =============================================================================


def create_comment(handle: DataHandle, post_id: UUID, request: CreateCommentRequest) -> CommentOut:
    """Comment on a post, or reply to a comment on it.

    Notifies the post author, the parent comment's author for replies, and
    any mentioned users.

    Raises:
        NotFoundError / ForbiddenError: If the caller cannot read the post.
        ForbiddenError: If a block exists between the caller and the post author.
        InvalidRequestError: If the parent is missing, deleted, or on another post.
    """
    caller_id = handle.require_caller()
    db = handle.db
    content = _clean_content(request.content)

    with transaction(db):
        post = load_readable_post(db, caller_id, post_id)
        if post.author_id != caller_id and is_blocked_between(db, caller_id, post.author_id):
            raise ForbiddenError(ApiErrorCode.E_BLOCKED, "You cannot comment on this post")

        parent = None
        if request.parent_id is not None:
            parent = db.get(Comment, request.parent_id)
            if parent is None or parent.is_deleted or parent.post_id != post.id:
                raise InvalidRequestError(
                    ApiErrorCode.E_PARENT_MISMATCH,
                    "Parent comment does not belong to this post",
                )

        comment = Comment(
            post_id=post.id,
            author_id=caller_id,
            parent_id=parent.id if parent is not None else None,
            content=content,
        )
        db.add(comment)

    logger.info(
        "comment_created",
        **safe_kv(comment_id=str(comment.id), is_reply=parent is not None, chars=len(content)),
    )

    notify(
        handle,
        recipient_id=post.author_id,
        actor_id=caller_id,
        notification_type=NotificationType.comment,
        reference_type=ReferenceType.post.value,
        reference_id=post.id,
    )
    if parent is not None and parent.author_id != post.author_id:
        notify(
            handle,
            recipient_id=parent.author_id,
            actor_id=caller_id,
            notification_type=NotificationType.comment,
            reference_type=ReferenceType.comment.value,
            reference_id=comment.id,
        )
    notify_mentions(
        handle,
        actor_id=caller_id,
        text=content,
        reference_type=ReferenceType.comment.value,
        reference_id=comment.id,
        readable_post_id=post.id,
    )

    return _hydrate(db, caller_id, [comment])[0]


def list_comments(handle: DataHandle, post_id: UUID, page: Page) -> list[CommentOut]:
    """Top-level comments on a readable post, oldest first."""
    db = handle.db
    load_readable_post(db, handle.caller_id, post_id)
    return _list(
        db, handle.caller_id, page, Comment.post_id == post_id, Comment.parent_id.is_(None)
    )


def list_replies(handle: DataHandle, comment_id: UUID, page: Page) -> list[CommentOut]:
    """Replies to a comment, oldest first."""
    db = handle.db
    _load_readable_comment(db, handle.caller_id, comment_id)
    return _list(db, handle.caller_id, page, Comment.parent_id == comment_id)


def update_comment(
    handle: DataHandle, comment_id: UUID, request: UpdateCommentRequest
) -> CommentOut:
    """Edit the caller's comment.

    Raises:
        NotFoundError: If the comment does not exist or is deleted.
        ForbiddenError: If the caller is not the author.
    """
    caller_id = handle.require_caller()
    db = handle.db
    content = _clean_content(request.content)

    with transaction(db):
        comment = _load_own_comment(db, caller_id, comment_id)
        comment.content = content

    return _hydrate(db, caller_id, [comment])[0]


def delete_comment(handle: DataHandle, comment_id: UUID) -> None:
    """Soft-delete the caller's comment. Replies stay in place."""
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        comment = _load_own_comment(db, caller_id, comment_id)
        comment.is_deleted = True

    logger.info("comment_deleted", comment_id=str(comment_id))


# =============================================================================
# Comment likes
# =============================================================================


def like_comment(handle: DataHandle, comment_id: UUID) -> None:
    """Like a comment and notify its author.

    Raises:
        ConflictError: If the caller already liked the comment.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        comment = _load_readable_comment(db, caller_id, comment_id)
        if comment.author_id != caller_id and is_blocked_between(db, caller_id, comment.author_id):
            raise ForbiddenError(ApiErrorCode.E_BLOCKED, "You cannot like this comment")
        insert_or_reject_duplicate(
            db,
            CommentLike(comment_id=comment.id, user_id=caller_id),
            ApiErrorCode.E_ALREADY_LIKED,
            "Comment already liked",
        )

    notify(
        handle,
        recipient_id=comment.author_id,
        actor_id=caller_id,
        notification_type=NotificationType.comment_like,
        reference_type=ReferenceType.comment.value,
        reference_id=comment.id,
    )


def unlike_comment(handle: DataHandle, comment_id: UUID) -> None:
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        result = db.execute(
            delete(CommentLike).where(
                CommentLike.comment_id == comment_id, CommentLike.user_id == caller_id
            )
        )
        if not result.rowcount:
            raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Like not found")
