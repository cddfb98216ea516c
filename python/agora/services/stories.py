"""Story service layer.

A story is readable by its author and by the author's followers until
expires_at, unless deleted or blocked. Expired rows are removed by the
purge_expired_stories maintenance task; reads filter on expires_at so an
expired story is never served even before the purge runs.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from agora.auth.permissions import is_blocked_between, is_following, not_block_related
from agora.config import get_settings
from agora.db.handles import DataHandle
from agora.db.models import Follow, Story, StoryView, User
from agora.db.session import transaction
from agora.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from agora.logging import get_logger
from agora.schemas.common import Page
from agora.schemas.story import CreateStoryRequest, StoryGroupOut, StoryOut, StoryViewerOut
from agora.services.users import get_active_user, load_user_summaries, to_summary

logger = get_logger(__name__)


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


def _active_clause(now: datetime):
    return (
        Story.is_deleted == False,  # noqa: E712
        Story.expires_at > now,
    )


def _hydrate(
    db: Session, viewer_id: UUID | None, stories: list[Story], with_view_counts: bool = False
) -> list[StoryOut]:
    if not stories:
        return []

    ids = [s.id for s in stories]
    authors = load_user_summaries(db, {s.author_id for s in stories})
    viewed: set[UUID] = set()
    if viewer_id is not None:
        viewed = set(
            db.execute(
                select(StoryView.story_id).where(
                    StoryView.story_id.in_(ids), StoryView.viewer_id == viewer_id
                )
            )
            .scalars()
            .all()
        )
    view_counts: dict[UUID, int] = {}
    if with_view_counts:
        view_counts = dict(
            db.execute(
                select(StoryView.story_id, func.count())
                .where(StoryView.story_id.in_(ids))
                .group_by(StoryView.story_id)
            ).all()
        )

    return [
        StoryOut(
            id=s.id,
            author=authors[s.author_id],
            media_url=s.media_url,
            media_type=s.media_type,
            caption=s.caption,
            created_at=s.created_at,
            expires_at=s.expires_at,
            is_viewed=s.id in viewed,
            view_count=int(view_counts.get(s.id, 0)) if with_view_counts else None,
        )
        for s in stories
    ]


def _can_view_author(db: Session, viewer_id: UUID, author_id: UUID) -> bool:
    if viewer_id == author_id:
        return True
    if is_blocked_between(db, viewer_id, author_id):
        return False
    return is_following(db, viewer_id, author_id)


def _load_active_story(db: Session, story_id: UUID, now: datetime) -> Story:
    story = db.get(Story, story_id)
    if story is None or story.is_deleted or story.expires_at <= now:
        raise NotFoundError(ApiErrorCode.E_STORY_NOT_FOUND, "Story not found")
    return story


# =============================================================================
# Stories
# =============================================================================


def create_story(
    handle: DataHandle, request: CreateStoryRequest, now: datetime | None = None
) -> StoryOut:
    """Post a story that expires after duration_hours.

    Raises:
        InvalidRequestError: If duration_hours exceeds the configured maximum.
    """
    caller_id = handle.require_caller()
    db = handle.db
    settings = get_settings()

    hours = request.duration_hours or settings.story_default_duration_hours
    if not 1 <= hours <= settings.story_max_duration_hours:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"duration_hours must be between 1 and {settings.story_max_duration_hours}",
        )

    created_at = _now(now)
    with transaction(db):
        story = Story(
            author_id=caller_id,
            media_url=request.media_url,
            media_type=request.media_type,
            caption=(request.caption or "").strip() or None,
            created_at=created_at,
            expires_at=created_at + timedelta(hours=hours),
        )
        db.add(story)

    logger.info("story_created", story_id=str(story.id), duration_hours=hours)
    return _hydrate(db, caller_id, [story], with_view_counts=True)[0]


def get_story_feed(handle: DataHandle, now: datetime | None = None) -> list[StoryGroupOut]:
    """Active stories from the caller and followed users, grouped by author.

    The caller's own group comes first; other groups with unviewed stories
    precede fully viewed ones, then most recent story first.
    """
    caller_id = handle.require_caller()
    db = handle.db
    current = _now(now)

    followed = select(Follow.following_id).where(Follow.follower_id == caller_id)
    query = (
        select(Story)
        .join(User, User.id == Story.author_id)
        .where(
            *_active_clause(current),
            User.is_active == True,  # noqa: E712
            or_(Story.author_id == caller_id, Story.author_id.in_(followed)),
            not_block_related(Story.author_id, caller_id),
        )
        .order_by(Story.created_at.asc(), Story.id.asc())
    )
    stories = list(db.execute(query).scalars().all())

    groups: dict[UUID, list[StoryOut]] = {}
    for item in _hydrate(db, caller_id, stories):
        groups.setdefault(item.author.id, []).append(item)

    result = [
        StoryGroupOut(
            author=items[0].author,
            stories=items,
            has_unviewed=any(not s.is_viewed for s in items),
        )
        for items in groups.values()
    ]
    result.sort(key=lambda g: g.stories[-1].created_at, reverse=True)
    result.sort(key=lambda g: (g.author.id != caller_id, not g.has_unviewed))
    return result


def list_user_stories(
    handle: DataHandle, user_id: UUID, now: datetime | None = None
) -> list[StoryOut]:
    """A user's active stories, oldest first.

    Raises:
        NotFoundError: If the user does not exist.
        ForbiddenError: If the caller neither is nor follows the user, or a block exists.
    """
    caller_id = handle.require_caller()
    db = handle.db
    get_active_user(db, user_id)

    if not _can_view_author(db, caller_id, user_id):
        raise ForbiddenError(ApiErrorCode.E_NOT_VISIBLE, "You cannot view these stories")

    query = (
        select(Story)
        .where(Story.author_id == user_id, *_active_clause(_now(now)))
        .order_by(Story.created_at.asc(), Story.id.asc())
    )
    stories = list(db.execute(query).scalars().all())
    return _hydrate(db, caller_id, stories, with_view_counts=user_id == caller_id)


def view_story(handle: DataHandle, story_id: UUID, now: datetime | None = None) -> None:
    """Record that the caller viewed a story.

    The first view inserts a row; later views refresh viewed_at. Authors
    viewing their own story are not recorded.

    Raises:
        NotFoundError: If the story does not exist, is deleted, or has expired.
        ForbiddenError: If the caller may not view the author's stories.
    """
    caller_id = handle.require_caller()
    db = handle.db
    current = _now(now)

    with transaction(db):
        story = _load_active_story(db, story_id, current)
        if story.author_id == caller_id:
            return
        if not _can_view_author(db, caller_id, story.author_id):
            raise ForbiddenError(ApiErrorCode.E_NOT_VISIBLE, "You cannot view this story")

        view = db.get(StoryView, (story.id, caller_id))
        if view is None:
            db.add(StoryView(story_id=story.id, viewer_id=caller_id, viewed_at=current))
        else:
            view.viewed_at = current


def list_story_viewers(
    handle: DataHandle, story_id: UUID, page: Page, now: datetime | None = None
) -> list[StoryViewerOut]:
    """Viewers of the caller's story, most recent first.

    Raises:
        ForbiddenError: If the caller is not the story's author.
    """
    caller_id = handle.require_caller()
    db = handle.db

    story = _load_active_story(db, story_id, _now(now))
    if story.author_id != caller_id:
        raise ForbiddenError(ApiErrorCode.E_NOT_AUTHOR, "Only the author can see viewers")

    rows = db.execute(
        select(User, StoryView.viewed_at)
        .join(StoryView, StoryView.viewer_id == User.id)
        .where(StoryView.story_id == story_id, User.is_active == True)  # noqa: E712
        .order_by(StoryView.viewed_at.desc(), User.id.desc())
        .limit(page.limit)
        .offset(page.offset)
    ).all()
    return [StoryViewerOut(user=to_summary(user), viewed_at=viewed_at) for user, viewed_at in rows]


def delete_story(handle: DataHandle, story_id: UUID) -> None:
    """Delete the caller's story.

    Raises:
        NotFoundError: If the story does not exist or is already deleted.
        ForbiddenError: If the caller is not the author.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        story = db.get(Story, story_id)
        if story is None or story.is_deleted:
            raise NotFoundError(ApiErrorCode.E_STORY_NOT_FOUND, "Story not found")
        if story.author_id != caller_id:
            raise ForbiddenError(ApiErrorCode.E_NOT_AUTHOR, "Only the author can delete this story")
        story.is_deleted = True

    logger.info("story_deleted", story_id=str(story_id))


# =============================================================================
# Maintenance
# =============================================================================


def purge_expired_stories(handle: DataHandle, now: datetime | None = None) -> int:
    """Delete expired and soft-deleted stories. Requires a service handle.

    Returns:
        Number of stories deleted.
    """
    if not handle.is_elevated:
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Maintenance requires a service handle")

    db = handle.db
    with transaction(db):
        result = db.execute(
            delete(Story).where(
                or_(Story.expires_at <= _now(now), Story.is_deleted == True)  # noqa: E712
            )
        )
    deleted = result.rowcount or 0
    logger.info("expired_stories_purged", deleted=deleted)
    return deleted
