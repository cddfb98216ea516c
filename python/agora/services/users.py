"""User profile service layer.

Profile reads, edits, search, suggestions, and account deletion.
Routes may not contain domain logic or raw DB access - they must call these functions.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from agora.auth.identity_admin import IdentityAdminBase, IdentityAdminError
from agora.auth.permissions import (
    block_related_ids,
    block_related_ids_query,
    is_blocked_between,
    is_following,
)
from agora.db.handles import DataHandle
from agora.db.models import Follow, Post, User
from agora.db.session import transaction
from agora.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from agora.logging import get_logger
from agora.schemas.common import Page, UserSummary
from agora.schemas.user import UpdateProfileRequest, UserProfileOut

logger = get_logger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_MAX_LENGTH = 100
DEFAULT_SUGGESTION_LIMIT = 10


# =============================================================================
# Helpers
# =============================================================================


def to_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
    )


def load_user_summaries(db: Session, user_ids: set[UUID] | list[UUID]) -> dict[UUID, UserSummary]:
    """Fetch summaries for many users in one query."""
    ids = set(user_ids)
    if not ids:
        return {}
    users = db.execute(select(User).where(User.id.in_(ids))).scalars().all()
    return {u.id: to_summary(u) for u in users}


def get_active_user(db: Session, user_id: UUID) -> User:
    """Load an active user or raise E_USER_NOT_FOUND."""
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return user


def get_follow_counts(db: Session, user_id: UUID) -> tuple[int, int]:
    """Return (followers_count, following_count), counting active accounts only."""
    followers = db.scalar(
        select(func.count())
        .select_from(Follow)
        .join(User, User.id == Follow.follower_id)
        .where(Follow.following_id == user_id, User.is_active == True)  # noqa: E712
    )
    following = db.scalar(
        select(func.count())
        .select_from(Follow)
        .join(User, User.id == Follow.following_id)
        .where(Follow.follower_id == user_id, User.is_active == True)  # noqa: E712
    )
    return int(followers or 0), int(following or 0)


def _build_profile(db: Session, viewer_id: UUID | None, user: User) -> UserProfileOut:
    followers_count, following_count = get_follow_counts(db, user.id)
    posts_count = db.scalar(
        select(func.count())
        .select_from(Post)
        .where(Post.author_id == user.id, Post.is_deleted == False)  # noqa: E712
    )

    profile = UserProfileOut.model_validate(user)
    profile.followers_count = followers_count
    profile.following_count = following_count
    profile.posts_count = int(posts_count or 0)

    if viewer_id is not None:
        profile.is_self = viewer_id == user.id
        if not profile.is_self:
            profile.is_following = is_following(db, viewer_id, user.id)
            profile.is_blocked = is_blocked_between(db, viewer_id, user.id)
    return profile


# =============================================================================
# Reads
# =============================================================================


def get_profile_by_id(handle: DataHandle, user_id: UUID) -> UserProfileOut:
    """Get a user's profile with counts and the viewer's relationship flags.

    Raises:
        NotFoundError: If the user does not exist or is deactivated.
    """
    user = get_active_user(handle.db, user_id)
    return _build_profile(handle.db, handle.caller_id, user)


def get_profile_by_username(handle: DataHandle, username: str) -> UserProfileOut:
    """Get a profile by username (case-insensitive).

    Raises:
        NotFoundError: If no active user has that username.
    """
    user = handle.db.execute(
        select(User).where(User.username == username.strip().lower())
    ).scalar_one_or_none()
    if user is None or not user.is_active:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return _build_profile(handle.db, handle.caller_id, user)


def get_me(handle: DataHandle) -> UserProfileOut:
    """Get the caller's own profile."""
    return get_profile_by_id(handle, handle.require_caller())


def search_users(handle: DataHandle, q: str, page: Page) -> list[UserSummary]:
    """Case-insensitive substring search over username and display name.

    Raises:
        InvalidRequestError: If q is shorter than 2 or longer than 100 characters.
    """
    q = q.strip()
    if not SEARCH_MIN_LENGTH <= len(q) <= SEARCH_MAX_LENGTH:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"Search query must be {SEARCH_MIN_LENGTH}-{SEARCH_MAX_LENGTH} characters",
        )

    escaped = q.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    query = select(User).where(
        User.is_active == True,  # noqa: E712
        or_(
            func.lower(User.username).like(pattern, escape="\\"),
            func.lower(User.display_name).like(pattern, escape="\\"),
        ),
    )
    if handle.caller_id is not None:
        query = query.where(User.id.not_in(block_related_ids_query(handle.caller_id)))

    query = query.order_by(User.username.asc()).limit(page.limit).offset(page.offset)
    return [to_summary(u) for u in handle.db.execute(query).scalars().all()]


def get_suggestions(handle: DataHandle, limit: int = DEFAULT_SUGGESTION_LIMIT) -> list[UserSummary]:
    """Active users the caller does not follow, most-followed first."""
    caller_id = handle.require_caller()
    db = handle.db

    already_following = select(Follow.following_id).where(Follow.follower_id == caller_id)
    follower_counts = (
        select(Follow.following_id.label("user_id"), func.count().label("n"))
        .group_by(Follow.following_id)
        .subquery()
    )

    query = (
        select(User)
        .outerjoin(follower_counts, follower_counts.c.user_id == User.id)
        .where(
            User.is_active == True,  # noqa: E712
            User.id != caller_id,
            User.id.not_in(already_following),
            User.id.not_in(block_related_ids_query(caller_id)),
        )
        .order_by(
            func.coalesce(follower_counts.c.n, 0).desc(),
            User.created_at.desc(),
            User.id.desc(),
        )
        .limit(min(max(limit, 1), 50))
    )
    return [to_summary(u) for u in db.execute(query).scalars().all()]


# =============================================================================
# Mutations
# =============================================================================


def update_profile(handle: DataHandle, request: UpdateProfileRequest) -> UserProfileOut:
    """Update the caller's profile fields that were provided.

    Returns:
        The updated profile.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        user = get_active_user(db, caller_id)
        for field in request.model_fields_set:
            value = getattr(request, field)
            if field == "is_private":
                if value is not None:
                    user.is_private = value
                continue
            if isinstance(value, str):
                value = value.strip() or None
            setattr(user, field, value)

    return _build_profile(db, caller_id, user)


def delete_account(
    handle: DataHandle,
    confirm_username: str,
    identity_admin: IdentityAdminBase,
) -> None:
    """Deactivate and scrub the caller's profile, then purge the auth record.

    The profile change is committed first with the caller's own handle. The
    auth-record purge uses the elevated identity admin; a purge failure is
    logged and does not undo the deactivation.

    Raises:
        InvalidRequestError: If confirm_username does not match the caller.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        user = get_active_user(db, caller_id)
        if confirm_username.strip().lower() != user.username:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_REQUEST, "confirm_username does not match"
            )

        user.is_active = False
        user.username = f"deleted_{caller_id.hex}"
        user.display_name = None
        user.bio = None
        user.avatar_url = None
        user.deleted_at = datetime.now(UTC)

        db.execute(
            delete(Follow).where(
                or_(Follow.follower_id == caller_id, Follow.following_id == caller_id)
            )
        )

    logger.info("account_deactivated", user_id=str(caller_id))

    try:
        identity_admin.delete_user(caller_id)
    except IdentityAdminError as e:
        logger.error(
            "account_purge_failed",
            user_id=str(caller_id),
            status_code=e.status_code,
            error=e.message,
        )


def list_related_users(
    handle: DataHandle, user_id: UUID, page: Page, direction: str
) -> list[UserSummary]:
    """Followers (direction='followers') or followees ('following') of a user.

    Hides accounts block-related to the viewer.

    Raises:
        NotFoundError: If the user does not exist or is deactivated.
    """
    db = handle.db
    get_active_user(db, user_id)

    if direction == "followers":
        other, anchor = Follow.follower_id, Follow.following_id
    else:
        other, anchor = Follow.following_id, Follow.follower_id

    query = (
        select(User)
        .join(Follow, and_(other == User.id, anchor == user_id))
        .where(User.is_active == True)  # noqa: E712
    )
    if handle.caller_id is not None:
        hidden = block_related_ids(db, handle.caller_id)
        if hidden:
            query = query.where(User.id.not_in(hidden))

    query = (
        query.order_by(Follow.created_at.desc(), User.id.desc())
        .limit(page.limit)
        .offset(page.offset)
    )
    return [to_summary(u) for u in db.execute(query).scalars().all()]
