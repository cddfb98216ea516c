"""Tests for the feed composer and feed routes."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from agora.db.engine import create_db_engine
from agora.db.types import utcnow
from agora.errors import ApiError, ApiErrorCode
from agora.schemas.common import Page
from agora.services.feed import (
    FallbackFeedSource,
    FeedComposer,
    PrimaryFeedSource,
    probe_feed_source,
)
from tests.factories import block, create_post, create_user, follow, like
from tests.helpers import auth_headers, data, error_code, ids


@pytest.fixture
def alice(db):
    return create_user(db, username="alice")


@pytest.fixture
def bob(db):
    return create_user(db, username="bob")


class TestHomeFeed:
    def test_without_follows_only_own_posts(self, client, db, alice, bob):
        own = create_post(db, alice)
        create_post(db, bob)

        feed = data(client.get("/api/feed", headers=auth_headers(alice.id)))

        assert ids(feed) == [str(own.id)]

    def test_followed_authors_newest_first(self, client, db, alice, bob):
        follow(db, alice, bob)
        now = utcnow()
        older = create_post(db, bob, created_at=now - timedelta(minutes=2))
        own = create_post(db, alice, created_at=now - timedelta(minutes=1))
        followers_only = create_post(db, bob, visibility="followers", created_at=now)
        create_post(db, bob, visibility="private")

        feed = data(client.get("/api/feed", headers=auth_headers(alice.id)))

        assert ids(feed) == [str(followers_only.id), str(own.id), str(older.id)]

    def test_followers_post_not_in_anonymous_explore(self, client, db, alice, bob):
        follow(db, alice, bob)
        post = create_post(db, bob, visibility="followers")

        home = data(client.get("/api/feed", headers=auth_headers(alice.id)))
        explore = data(client.get("/api/feed/explore"))

        assert str(post.id) in ids(home)
        assert str(post.id) not in ids(explore)

    def test_excludes_deleted_and_inactive_authors(self, client, db, alice, bob):
        gone = create_user(db, username="gone", is_active=False)
        follow(db, alice, bob)
        follow(db, alice, gone)
        create_post(db, bob, is_deleted=True)
        create_post(db, gone)

        assert data(client.get("/api/feed", headers=auth_headers(alice.id))) == []

    @pytest.mark.parametrize("alice_blocks", [True, False])
    def test_block_hides_posts_both_ways(self, client, db, alice, bob, alice_blocks):
        follow(db, alice, bob)
        follow(db, bob, alice)
        alice_post = create_post(db, alice)
        bob_post = create_post(db, bob)
        if alice_blocks:
            block(db, alice, bob)
        else:
            block(db, bob, alice)

        alice_feed = data(client.get("/api/feed", headers=auth_headers(alice.id)))
        bob_feed = data(client.get("/api/feed", headers=auth_headers(bob.id)))

        assert ids(alice_feed) == [str(alice_post.id)]
        assert ids(bob_feed) == [str(bob_post.id)]

    def test_equal_timestamps_page_by_id_desc(self, client, db, alice, bob):
        follow(db, alice, bob)
        same_time = utcnow() - timedelta(minutes=5)
        posts = [create_post(db, bob, created_at=same_time) for _ in range(5)]
        expected = [str(p.id) for p in sorted(posts, key=lambda p: p.id, reverse=True)]

        seen = []
        for offset in range(0, 6, 2):
            page = data(
                client.get(
                    "/api/feed",
                    params={"limit": 2, "offset": offset},
                    headers=auth_headers(alice.id),
                )
            )
            seen.extend(ids(page))

        assert seen == expected
        assert len(set(seen)) == 5

    def test_requires_auth(self, client):
        response = client.get("/api/feed")

        assert response.status_code == 401
        assert error_code(response) == "E_UNAUTHENTICATED"


class TestExploreFeed:
    def test_most_liked_first(self, client, db, alice, bob):
        carol = create_user(db, username="carol")
        quiet = create_post(db, alice, content="quiet")
        popular = create_post(db, alice, content="popular")
        middling = create_post(db, bob, content="middling")
        like(db, bob, popular)
        like(db, carol, popular)
        like(db, carol, middling)

        explore = data(client.get("/api/feed/explore"))

        assert ids(explore) == [str(popular.id), str(middling.id), str(quiet.id)]

    def test_only_public_posts(self, client, db, alice):
        public = create_post(db, alice)
        create_post(db, alice, visibility="followers")
        create_post(db, alice, visibility="private")

        explore = data(client.get("/api/feed/explore", headers=auth_headers(alice.id)))

        assert ids(explore) == [str(public.id)]

    def test_blocked_authors_hidden(self, client, db, alice, bob):
        create_post(db, bob)
        block(db, bob, alice)

        assert data(client.get("/api/feed/explore", headers=auth_headers(alice.id))) == []


class TestTrending:
    def test_counts_public_tags_in_timeframe(self, client, db, alice, bob):
        now = utcnow()
        create_post(db, alice, tags=["python", "news"], created_at=now - timedelta(minutes=5))
        create_post(db, bob, tags=["python"], created_at=now - timedelta(minutes=10))
        create_post(db, bob, tags=["old"], created_at=now - timedelta(days=2))
        create_post(db, bob, tags=["secret"], visibility="private")

        trending = data(client.get("/api/feed/trending"))
        weekly = data(client.get("/api/feed/trending", params={"timeframe": "7d"}))

        assert trending == [{"tag": "python", "count": 2}, {"tag": "news", "count": 1}]
        assert {t["tag"] for t in weekly} == {"python", "news", "old"}

    def test_limit(self, client, db, alice):
        create_post(db, alice, tags=["a", "b", "c"])

        trending = data(client.get("/api/feed/trending", params={"limit": 2}))

        assert len(trending) == 2

    def test_unknown_timeframe_rejected(self, client):
        response = client.get("/api/feed/trending", params={"timeframe": "1y"})

        assert response.status_code == 400
        assert error_code(response) == "E_INVALID_REQUEST"


class TestRecommended:
    def test_shares_tags_with_liked_posts(self, client, db, alice, bob):
        carol = create_user(db, username="carol")
        liked = create_post(db, bob, tags=["jazz"])
        like(db, alice, liked)
        match = create_post(db, carol, tags=["jazz", "vinyl"])
        create_post(db, carol, tags=["golf"])
        create_post(db, alice, tags=["jazz"])

        result = data(client.get("/api/feed/recommended", headers=auth_headers(alice.id)))

        assert ids(result) == [str(match.id), str(liked.id)]

    def test_without_likes_falls_back_to_explore(self, client, db, alice, bob):
        post = create_post(db, bob)

        result = data(client.get("/api/feed/recommended", headers=auth_headers(alice.id)))

        assert ids(result) == [str(post.id)]


class _BrokenSource(FallbackFeedSource):
    name = "broken"

    def home(self, db, viewer_id, page):
        raise OperationalError("SELECT", {}, Exception("connection reset"))


class TestFeedComposer:
    def test_storage_failure_surfaces_as_storage_error(self, handle_for, alice):
        composer = FeedComposer(_BrokenSource())

        with pytest.raises(ApiError) as exc_info:
            composer.get_home_feed(handle_for(alice.id), Page())

        assert exc_info.value.code == ApiErrorCode.E_STORAGE_ERROR

    def test_trending_uses_given_clock(self, handle_for, db, alice):
        create_post(db, alice, tags=["launch"])
        composer = FeedComposer(FallbackFeedSource())

        later = composer.get_trending_hashtags(
            handle_for(None), timeframe="1h", now=utcnow() + timedelta(hours=2)
        )

        assert later == []

    def test_trending_limit_clamped(self, handle_for, db, alice):
        create_post(db, alice, tags=[f"t{i}" for i in range(60)])
        composer = FeedComposer(FallbackFeedSource())

        assert len(composer.get_trending_hashtags(handle_for(None), limit=500)) == 50

    def test_probe_selects_fallback_off_postgres(self):
        engine = create_db_engine("sqlite://")
        try:
            source = probe_feed_source(engine)
        finally:
            engine.dispose()

        assert isinstance(source, FallbackFeedSource)
        assert not isinstance(source, PrimaryFeedSource)
