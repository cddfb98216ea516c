"""Tests for visibility and block predicates.

These predicates gate every read path, so each rule is checked directly
against the database rather than through a route.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from agora.auth.permissions import (
    block_related_ids,
    can_read_post,
    is_blocked_between,
    is_following,
    post_visibility_allows,
    readable_post_ids,
)
from agora.db.models import Post, User
from tests.factories import block, create_post, create_user, follow


@pytest.fixture
def people(db):
    author = create_user(db, username="author")
    fan = create_user(db, username="fan")
    stranger = create_user(db, username="stranger")
    follow(db, fan, author)
    return author, fan, stranger


class TestPostVisibility:
    @pytest.mark.parametrize(
        "visibility,author_ok,fan_ok,stranger_ok,anon_ok",
        [
            ("public", True, True, True, True),
            ("followers", True, True, False, False),
            ("private", True, False, False, False),
        ],
    )
    def test_visibility_matrix(
        self, db, people, visibility, author_ok, fan_ok, stranger_ok, anon_ok
    ):
        author, fan, stranger = people
        post = create_post(db, author, visibility=visibility)

        assert can_read_post(db, author.id, post.id) is author_ok
        assert can_read_post(db, fan.id, post.id) is fan_ok
        assert can_read_post(db, stranger.id, post.id) is stranger_ok
        assert can_read_post(db, None, post.id) is anon_ok

    def test_deleted_post_unreadable_even_by_author(self, db, people):
        author, _, _ = people
        post = create_post(db, author, is_deleted=True)

        assert can_read_post(db, author.id, post.id) is False

    def test_inactive_author_hides_posts(self, db, people):
        author, fan, _ = people
        post = create_post(db, author)
        db.get(User, author.id).is_active = False
        db.commit()

        assert can_read_post(db, fan.id, post.id) is False
        assert can_read_post(db, None, post.id) is False

    def test_block_hides_public_posts_both_ways(self, db, people):
        author, _, stranger = people
        post_by_author = create_post(db, author)
        post_by_stranger = create_post(db, stranger)
        block(db, author, stranger)

        assert can_read_post(db, stranger.id, post_by_author.id) is False
        assert can_read_post(db, author.id, post_by_stranger.id) is False
        # Anonymous viewers are unaffected by blocks
        assert can_read_post(db, None, post_by_author.id) is True

    def test_missing_post_is_unreadable(self, db, people):
        author, _, _ = people

        assert can_read_post(db, author.id, uuid4()) is False

    def test_readable_post_ids_filters_batch(self, db, people):
        author, _, stranger = people
        public = create_post(db, author, visibility="public")
        followers = create_post(db, author, visibility="followers")
        private = create_post(db, author, visibility="private")

        readable = readable_post_ids(db, stranger.id, [public.id, followers.id, private.id])

        assert readable == {public.id}

    def test_readable_post_ids_empty_input(self, db):
        assert readable_post_ids(db, None, []) == set()

    def test_visibility_rule_alone_ignores_deletion(self, db, people):
        author, fan, stranger = people
        post = create_post(db, author, visibility="followers", is_deleted=True)
        row = db.execute(select(Post).where(Post.id == post.id)).scalar_one()

        assert post_visibility_allows(db, fan.id, row) is True
        assert post_visibility_allows(db, stranger.id, row) is False
        assert post_visibility_allows(db, None, row) is False


class TestGraphPredicates:
    def test_block_is_symmetric(self, db, people):
        author, _, stranger = people
        block(db, stranger, author)

        assert is_blocked_between(db, author.id, stranger.id)
        assert is_blocked_between(db, stranger.id, author.id)

    def test_block_related_ids_cover_both_directions(self, db, people):
        author, fan, stranger = people
        block(db, author, stranger)
        block(db, fan, author)

        assert block_related_ids(db, author.id) == {stranger.id, fan.id}

    def test_follow_is_directed(self, db, people):
        author, fan, _ = people

        assert is_following(db, fan.id, author.id)
        assert not is_following(db, author.id, fan.id)
