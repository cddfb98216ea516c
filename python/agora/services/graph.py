"""Social graph service layer: follows and blocks.

Follow edges are directed and unique per pair. Block edges are directed in
storage but symmetric in effect. Creating a block removes exactly the two
directed follow edges between the pair, in the same transaction.
"""

from uuid import UUID

from sqlalchemy import and_, delete, or_, select

from agora.auth.permissions import is_blocked_between
from agora.db.handles import DataHandle
from agora.db.models import Block, Follow, NotificationType, ReferenceType, User
from agora.db.session import transaction
from agora.errors import (
    ApiErrorCode,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from agora.logging import get_logger
from agora.schemas.common import Page, UserSummary
from agora.services.notifications import notify
from agora.services.store import insert_or_reject_duplicate
from agora.services.users import get_active_user, to_summary

logger = get_logger(__name__)


# =============================================================================
# Follows
# =============================================================================


def follow_user(handle: DataHandle, target_id: UUID) -> None:
    """Follow another user and notify them.

    Raises:
        InvalidRequestError: If the caller targets themselves.
        NotFoundError: If the target does not exist or is deactivated.
        ForbiddenError: If a block exists in either direction.
        ConflictError: If the caller already follows the target.
    """
    caller_id = handle.require_caller()
    if target_id == caller_id:
        raise InvalidRequestError(ApiErrorCode.E_SELF_ACTION, "You cannot follow yourself")

    db = handle.db
    with transaction(db):
        get_active_user(db, target_id)
        if is_blocked_between(db, caller_id, target_id):
            raise ForbiddenError(ApiErrorCode.E_BLOCKED, "Cannot follow this user")
        insert_or_reject_duplicate(
            db,
            Follow(follower_id=caller_id, following_id=target_id),
            ApiErrorCode.E_ALREADY_FOLLOWING,
            "Already following this user",
        )

    logger.info("user_followed", follower_id=str(caller_id), following_id=str(target_id))

    notify(
        handle,
        recipient_id=target_id,
        actor_id=caller_id,
        notification_type=NotificationType.follow,
        reference_type=ReferenceType.user.value,
        reference_id=caller_id,
    )


def unfollow_user(handle: DataHandle, target_id: UUID) -> None:
    """Remove the caller's follow edge to target.

    Raises:
        NotFoundError: If the caller does not follow the target.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        result = db.execute(
            delete(Follow).where(
                Follow.follower_id == caller_id,
                Follow.following_id == target_id,
            )
        )
        if not result.rowcount:
            raise NotFoundError(ApiErrorCode.E_FOLLOW_NOT_FOUND, "You are not following this user")


# =============================================================================
# Blocks
# =============================================================================


def block_user(handle: DataHandle, target_id: UUID) -> None:
    """Block a user, removing follow edges in both directions.

    Only the edges caller->target and target->caller are deleted.

    Raises:
        InvalidRequestError: If the caller targets themselves.
        NotFoundError: If the target does not exist.
        ConflictError: If the caller already blocked the target.
    """
    caller_id = handle.require_caller()
    if target_id == caller_id:
        raise InvalidRequestError(ApiErrorCode.E_SELF_ACTION, "You cannot block yourself")

    db = handle.db
    with transaction(db):
        if db.get(User, target_id) is None:
            raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")

        insert_or_reject_duplicate(
            db,
            Block(blocker_id=caller_id, blocked_id=target_id),
            ApiErrorCode.E_ALREADY_BLOCKED,
            "User already blocked",
        )
        removed = db.execute(
            delete(Follow).where(
                or_(
                    and_(Follow.follower_id == caller_id, Follow.following_id == target_id),
                    and_(Follow.follower_id == target_id, Follow.following_id == caller_id),
                )
            )
        ).rowcount

    logger.info("user_blocked", blocker_id=str(caller_id), follows_removed=removed or 0)


def unblock_user(handle: DataHandle, target_id: UUID) -> None:
    """Remove the caller's block on target. Follow edges are not restored.

    Raises:
        NotFoundError: If the caller has not blocked the target.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        result = db.execute(
            delete(Block).where(Block.blocker_id == caller_id, Block.blocked_id == target_id)
        )
        if not result.rowcount:
            raise NotFoundError(ApiErrorCode.E_BLOCK_NOT_FOUND, "User is not blocked")


def list_blocked_users(handle: DataHandle, page: Page) -> list[UserSummary]:
    """Users the caller has blocked, most recent first."""
    caller_id = handle.require_caller()
    query = (
        select(User)
        .join(Block, Block.blocked_id == User.id)
        .where(Block.blocker_id == caller_id)
        .order_by(Block.created_at.desc(), User.id.desc())
        .limit(page.limit)
        .offset(page.offset)
    )
    return [to_summary(u) for u in handle.db.execute(query).scalars().all()]

