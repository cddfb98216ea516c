"""Feed composition with a two-tier source.

Provides the home, explore, trending, and recommended feeds through one of
two interchangeable sources:
- PrimaryFeedSource: server-side SQL functions installed by migration 0002
  (get_personalized_feed, get_explore_feed, get_trending_hashtags)
- FallbackFeedSource: the same feeds composed with ORM queries

The source is chosen once at startup by probe_feed_source(). Both tiers
return the same shape: post ids produced by the SQL functions are passed
back through readable_post_ids and hydrated exactly like fallback rows, so
a filtered row can never leak through the primary path.
"""

from abc import ABC, abstractmethod
from collections import Counter
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import Engine, and_, func, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agora.auth.permissions import readable_post_clause, readable_post_ids
from agora.db.handles import DataHandle
from agora.db.models import Follow, Post, PostLike, User, Visibility
from agora.errors import ApiError, ApiErrorCode, InvalidRequestError
from agora.logging import get_logger
from agora.schemas.common import Page
from agora.schemas.post import PostOut, TrendingTagOut
from agora.services.posts import hydrate_posts

logger = get_logger(__name__)

TIMEFRAMES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_TIMEFRAME = "24h"
DEFAULT_TRENDING_LIMIT = 10
MAX_TRENDING_LIMIT = 50

# Number of recent likes whose tags seed recommendations
RECOMMENDATION_LIKE_WINDOW = 50
# Number of newest public posts scanned for tag overlap
RECOMMENDATION_SCAN_LIMIT = 500

FEED_FUNCTIONS = ("get_personalized_feed", "get_explore_feed", "get_trending_hashtags")


def _like_counts():
    return (
        select(PostLike.post_id.label("post_id"), func.count().label("n"))
        .group_by(PostLike.post_id)
        .subquery()
    )


# =============================================================================
# Sources
# =============================================================================


class FeedSource(ABC):
    """Abstract feed source. Returned posts are already visibility-filtered."""

    name: str = "abstract"

    @abstractmethod
    def home(self, db: Session, viewer_id: UUID, page: Page) -> list[PostOut]: ...

    @abstractmethod
    def explore(self, db: Session, viewer_id: UUID | None, page: Page) -> list[PostOut]: ...

    @abstractmethod
    def trending(self, db: Session, since: datetime, limit: int) -> list[TrendingTagOut]: ...

    @abstractmethod
    def recommended(self, db: Session, viewer_id: UUID, limit: int) -> list[PostOut]: ...


class FallbackFeedSource(FeedSource):
    """ORM composition of every feed. Works on any database."""

    name = "fallback"

    def home(self, db: Session, viewer_id: UUID, page: Page) -> list[PostOut]:
        followed = select(Follow.following_id).where(Follow.follower_id == viewer_id)
        query = (
            select(Post)
            .join(User, User.id == Post.author_id)
            .where(
                readable_post_clause(viewer_id),
                or_(
                    Post.author_id == viewer_id,
                    and_(
                        Post.author_id.in_(followed),
                        Post.visibility.in_(
                            [Visibility.public.value, Visibility.followers.value]
                        ),
                    ),
                ),
            )
            .order_by(Post.created_at.desc(), Post.id.desc())
            .limit(page.limit)
            .offset(page.offset)
        )
        return hydrate_posts(db, viewer_id, list(db.execute(query).scalars().all()))

    def explore(self, db: Session, viewer_id: UUID | None, page: Page) -> list[PostOut]:
        likes = _like_counts()
        query = (
            select(Post)
            .join(User, User.id == Post.author_id)
            .outerjoin(likes, likes.c.post_id == Post.id)
            .where(
                Post.visibility == Visibility.public.value,
                readable_post_clause(viewer_id),
            )
            .order_by(
                func.coalesce(likes.c.n, 0).desc(),
                Post.created_at.desc(),
                Post.id.desc(),
            )
            .limit(page.limit)
            .offset(page.offset)
        )
        return hydrate_posts(db, viewer_id, list(db.execute(query).scalars().all()))

    def trending(self, db: Session, since: datetime, limit: int) -> list[TrendingTagOut]:
        rows = db.execute(
            select(Post.tags)
            .join(User, User.id == Post.author_id)
            .where(
                Post.visibility == Visibility.public.value,
                Post.is_deleted == False,  # noqa: E712
                User.is_active == True,  # noqa: E712
                Post.created_at >= since,
            )
        ).scalars()

        counts: Counter[str] = Counter()
        for tags in rows:
            counts.update(set(tags or []))

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [TrendingTagOut(tag=tag, count=n) for tag, n in ranked[:limit]]

    def recommended(self, db: Session, viewer_id: UUID, limit: int) -> list[PostOut]:
        liked_tags: set[str] = set()
        liked_rows = db.execute(
            select(Post.tags)
            .join(PostLike, PostLike.post_id == Post.id)
            .where(PostLike.user_id == viewer_id)
            .order_by(PostLike.created_at.desc())
            .limit(RECOMMENDATION_LIKE_WINDOW)
        ).scalars()
        for tags in liked_rows:
            liked_tags.update(tags or [])

        if not liked_tags:
            return self.explore(db, viewer_id, Page(limit=limit, offset=0))

        candidates = db.execute(
            select(Post)
            .join(User, User.id == Post.author_id)
            .where(
                Post.visibility == Visibility.public.value,
                Post.author_id != viewer_id,
                readable_post_clause(viewer_id),
            )
            .order_by(Post.created_at.desc(), Post.id.desc())
            .limit(RECOMMENDATION_SCAN_LIMIT)
        ).scalars()

        picked = [p for p in candidates if liked_tags.intersection(p.tags or [])][:limit]
        return hydrate_posts(db, viewer_id, picked)


class PrimaryFeedSource(FallbackFeedSource):
    """Feeds backed by the server-side SQL functions.

    Recommendations have no SQL function and use the ORM composition.
    """

    name = "primary"

    def _rehydrate(self, db: Session, viewer_id: UUID | None, ids: list[UUID]) -> list[PostOut]:
        readable = readable_post_ids(db, viewer_id, ids)
        if not readable:
            return []
        rows = db.execute(select(Post).where(Post.id.in_(readable))).scalars().all()
        by_id = {p.id: p for p in rows}
        ordered = [by_id[i] for i in ids if i in by_id]
        return hydrate_posts(db, viewer_id, ordered)

    def home(self, db: Session, viewer_id: UUID, page: Page) -> list[PostOut]:
        ids = db.execute(
            text(
                "SELECT post_id FROM get_personalized_feed("
                ":current_user_id, :limit_count, :offset_count)"
            ),
            {"current_user_id": viewer_id, "limit_count": page.limit, "offset_count": page.offset},
        ).scalars()
        return self._rehydrate(db, viewer_id, list(ids))

    def explore(self, db: Session, viewer_id: UUID | None, page: Page) -> list[PostOut]:
        ids = db.execute(
            text(
                "SELECT post_id FROM get_explore_feed("
                ":current_user_id, :limit_count, :offset_count)"
            ),
            {"current_user_id": viewer_id, "limit_count": page.limit, "offset_count": page.offset},
        ).scalars()
        return self._rehydrate(db, viewer_id, list(ids))

    def trending(self, db: Session, since: datetime, limit: int) -> list[TrendingTagOut]:
        rows = db.execute(
            text("SELECT tag, post_count FROM get_trending_hashtags(:limit_count, :since)"),
            {"limit_count": limit, "since": since},
        ).all()
        return [TrendingTagOut(tag=tag, count=int(n)) for tag, n in rows]


def probe_feed_source(engine: Engine) -> FeedSource:
    """Pick the primary source when all feed functions exist, else the fallback.

    Non-Postgres engines always get the fallback. A failed probe is logged
    and also selects the fallback.
    """
    source: FeedSource = FallbackFeedSource()
    if engine.dialect.name == "postgresql":
        try:
            with engine.connect() as conn:
                found = set(
                    conn.execute(
                        text("SELECT proname FROM pg_proc WHERE proname = ANY(:names)"),
                        {"names": list(FEED_FUNCTIONS)},
                    ).scalars()
                )
            if found.issuperset(FEED_FUNCTIONS):
                source = PrimaryFeedSource()
        except SQLAlchemyError as e:
            logger.warning("feed_probe_failed", error_class=type(e).__name__)

    logger.info("feed_source_selected", source=source.name, dialect=engine.dialect.name)
    return source


# =============================================================================
# Composer
# =============================================================================


class FeedComposer:
    """Entry point for feed reads. Wraps the selected source.

    Store failures surface as E_STORAGE_ERROR; the composer never switches
    sources per request.
    """

    def __init__(self, source: FeedSource):
        self.source = source

    def _run(self, handle: DataHandle, feed: str, fn, *args):
        try:
            return fn(handle.db, *args)
        except SQLAlchemyError as e:
            handle.db.rollback()
            logger.error(
                "feed_query_failed",
                feed=feed,
                source=self.source.name,
                error_class=type(e).__name__,
            )
            raise ApiError(ApiErrorCode.E_STORAGE_ERROR, "Failed to load feed") from e

    def get_home_feed(self, handle: DataHandle, page: Page) -> list[PostOut]:
        """Caller's own posts plus public/followers posts of followed authors."""
        caller_id = handle.require_caller()
        return self._run(handle, "home", self.source.home, caller_id, page)

    def get_explore_feed(self, handle: DataHandle, page: Page) -> list[PostOut]:
        """Public posts, most liked first. Anonymous callers allowed."""
        return self._run(handle, "explore", self.source.explore, handle.caller_id, page)

    def get_trending_hashtags(
        self,
        handle: DataHandle,
        limit: int = DEFAULT_TRENDING_LIMIT,
        timeframe: str = DEFAULT_TIMEFRAME,
        now: datetime | None = None,
    ) -> list[TrendingTagOut]:
        """Most used tags on public posts inside the timeframe.

        Raises:
            InvalidRequestError: If timeframe is not one of 1h, 24h, 7d, 30d.
        """
        if timeframe not in TIMEFRAMES:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_REQUEST,
                f"timeframe must be one of {', '.join(TIMEFRAMES)}",
            )
        limit = min(max(limit, 1), MAX_TRENDING_LIMIT)
        since = (now or datetime.now(UTC)) - TIMEFRAMES[timeframe]
        return self._run(handle, "trending", self.source.trending, since, limit)

    def get_recommended_posts(self, handle: DataHandle, limit: int = 20) -> list[PostOut]:
        """Public posts sharing tags with posts the caller liked."""
        caller_id = handle.require_caller()
        return self._run(handle, "recommended", self.source.recommended, caller_id, limit)
