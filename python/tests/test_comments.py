"""Tests for comments, replies, and comment likes."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from agora.db.models import Comment, CommentLike, Notification
from agora.db.types import utcnow
from tests.factories import block, create_comment, create_post, create_user, follow
from tests.helpers import auth_headers, data, error_code


@pytest.fixture
def author(db):
    return create_user(db, username="author")


@pytest.fixture
def reader(db):
    return create_user(db, username="reader")


@pytest.fixture
def post(db, author):
    return create_post(db, author, content="original")


def _notifications(session_factory, recipient_id) -> list[Notification]:
    with session_factory() as s:
        return list(
            s.execute(
                select(Notification).where(Notification.recipient_id == recipient_id)
            ).scalars()
        )


class TestCreateComment:
    def test_comment_notifies_post_author(self, client, session_factory, author, reader, post):
        response = client.post(
            f"/api/posts/{post.id}/comments",
            json={"content": "  great post  "},
            headers=auth_headers(reader.id),
        )

        assert response.status_code == 201
        comment = data(response)
        assert comment["content"] == "great post"
        assert comment["parent_id"] is None
        assert comment["author"]["username"] == "reader"

        (notification,) = _notifications(session_factory, author.id)
        assert notification.type == "comment"
        assert notification.reference_type == "post"
        assert notification.reference_id == post.id

    def test_own_comment_does_not_notify(self, client, session_factory, author, post):
        client.post(
            f"/api/posts/{post.id}/comments",
            json={"content": "bump"},
            headers=auth_headers(author.id),
        )

        assert _notifications(session_factory, author.id) == []

    def test_reply_notifies_parent_author_too(
        self, client, db, session_factory, author, reader, post
    ):
        replier = create_user(db, username="replier")
        parent = create_comment(db, reader, post)

        response = client.post(
            f"/api/posts/{post.id}/comments",
            json={"content": "agreed", "parent_id": str(parent.id)},
            headers=auth_headers(replier.id),
        )

        reply = data(response)
        assert reply["parent_id"] == str(parent.id)
        assert [n.reference_type for n in _notifications(session_factory, author.id)] == ["post"]
        (to_parent,) = _notifications(session_factory, reader.id)
        assert to_parent.reference_type == "comment"
        assert str(to_parent.reference_id) == reply["id"]

    def test_mentions_in_comment_notify(self, client, db, session_factory, author, reader, post):
        friend = create_user(db, username="friend")

        client.post(
            f"/api/posts/{post.id}/comments",
            json={"content": "look @friend"},
            headers=auth_headers(reader.id),
        )

        (mention,) = _notifications(session_factory, friend.id)
        assert mention.type == "mention"
        assert mention.reference_type == "comment"

    def test_comment_mention_skips_users_who_cannot_read_post(
        self, client, db, session_factory, author, reader
    ):
        outsider = create_user(db, username="outsider")
        follow(db, reader, author)
        hidden = create_post(db, author, visibility="followers")

        response = client.post(
            f"/api/posts/{hidden.id}/comments",
            json={"content": "ping @outsider"},
            headers=auth_headers(reader.id),
        )

        assert response.status_code == 201
        assert _notifications(session_factory, outsider.id) == []

    def test_parent_on_other_post_rejected(self, client, db, author, reader, post):
        other_post = create_post(db, author, content="other")
        foreign_parent = create_comment(db, reader, other_post)

        response = client.post(
            f"/api/posts/{post.id}/comments",
            json={"content": "reply", "parent_id": str(foreign_parent.id)},
            headers=auth_headers(reader.id),
        )

        assert response.status_code == 400
        assert error_code(response) == "E_PARENT_MISMATCH"

    def test_whitespace_only_content(self, client, reader, post):
        response = client.post(
            f"/api/posts/{post.id}/comments",
            json={"content": "   "},
            headers=auth_headers(reader.id),
        )

        assert response.status_code == 400
        assert error_code(response) == "E_CONTENT_REQUIRED"

    def test_content_too_long(self, client, reader, post):
        response = client.post(
            f"/api/posts/{post.id}/comments",
            json={"content": "x" * 1001},
            headers=auth_headers(reader.id),
        )

        assert response.status_code == 400

    def test_cannot_comment_on_unreadable_post(self, client, db, author, reader):
        private = create_post(db, author, visibility="followers")

        response = client.post(
            f"/api/posts/{private.id}/comments",
            json={"content": "hi"},
            headers=auth_headers(reader.id),
        )

        assert response.status_code == 403
        assert error_code(response) == "E_NOT_VISIBLE"

    def test_follower_can_comment_on_followers_post(self, client, db, author, reader):
        follow(db, reader, author)
        followers_only = create_post(db, author, visibility="followers")

        response = client.post(
            f"/api/posts/{followers_only.id}/comments",
            json={"content": "hi"},
            headers=auth_headers(reader.id),
        )

        assert response.status_code == 201


class TestListComments:
    def test_top_level_oldest_first_with_reply_counts(self, db, client, author, reader, post):
        first = create_comment(db, reader, post, content="first")
        second = create_comment(db, author, post, content="second")
        db.get(Comment, first.id).created_at = utcnow() - timedelta(minutes=5)
        db.commit()
        create_comment(db, author, post, content="reply", parent=first)

        comments = data(client.get(f"/api/posts/{post.id}/comments"))

        assert [c["id"] for c in comments] == [str(first.id), str(second.id)]
        assert comments[0]["reply_count"] == 1

    def test_hides_deleted_and_block_related(self, db, client, author, reader, post):
        troll = create_user(db, username="troll")
        create_comment(db, troll, post, content="spam")
        gone = create_comment(db, reader, post, content="gone")
        db.get(Comment, gone.id).is_deleted = True
        db.commit()
        block(db, reader, troll)

        comments = data(
            client.get(f"/api/posts/{post.id}/comments", headers=auth_headers(reader.id))
        )
        anonymous = data(client.get(f"/api/posts/{post.id}/comments"))

        assert comments == []
        assert [c["content"] for c in anonymous] == ["spam"]

    def test_replies(self, db, client, author, reader, post):
        parent = create_comment(db, reader, post)
        reply = create_comment(db, author, post, content="thanks", parent=parent)

        replies = data(client.get(f"/api/comments/{parent.id}/replies"))

        assert [r["id"] for r in replies] == [str(reply.id)]

    def test_missing_post(self, client):
        response = client.get("/api/posts/00000000-0000-0000-0000-000000000001/comments")

        assert response.status_code == 404
        assert error_code(response) == "E_POST_NOT_FOUND"


class TestEditComment:
    def test_author_can_edit(self, db, client, reader, post):
        comment = create_comment(db, reader, post)

        response = client.patch(
            f"/api/comments/{comment.id}",
            json={"content": "edited"},
            headers=auth_headers(reader.id),
        )

        assert data(response)["content"] == "edited"

    def test_other_user_cannot_edit(self, db, client, author, reader, post):
        comment = create_comment(db, reader, post)

        response = client.patch(
            f"/api/comments/{comment.id}",
            json={"content": "hijack"},
            headers=auth_headers(author.id),
        )

        assert response.status_code == 403
        assert error_code(response) == "E_NOT_AUTHOR"

    def test_delete_keeps_replies(self, db, client, session_factory, author, reader, post):
        parent = create_comment(db, reader, post)
        reply = create_comment(db, author, post, parent=parent)

        response = client.delete(f"/api/comments/{parent.id}", headers=auth_headers(reader.id))

        assert response.status_code == 204
        with session_factory() as s:
            assert s.get(Comment, parent.id).is_deleted is True
            assert s.get(Comment, reply.id).is_deleted is False

    def test_deleted_comment_not_found(self, db, client, reader, post):
        comment = create_comment(db, reader, post)
        client.delete(f"/api/comments/{comment.id}", headers=auth_headers(reader.id))

        response = client.delete(f"/api/comments/{comment.id}", headers=auth_headers(reader.id))

        assert response.status_code == 404
        assert error_code(response) == "E_COMMENT_NOT_FOUND"


class TestCommentLikes:
    def test_like_notifies_and_rejects_duplicate(
        self, db, client, session_factory, author, reader, post
    ):
        comment = create_comment(db, reader, post)

        first = client.post(f"/api/comments/{comment.id}/like", headers=auth_headers(author.id))
        second = client.post(f"/api/comments/{comment.id}/like", headers=auth_headers(author.id))

        assert first.status_code == 200
        assert second.status_code == 409
        assert error_code(second) == "E_ALREADY_LIKED"
        with session_factory() as s:
            assert len(s.execute(select(CommentLike)).scalars().all()) == 1
        (notification,) = _notifications(session_factory, reader.id)
        assert notification.type == "comment_like"

    def test_liked_flag_and_count(self, db, client, author, reader, post):
        comment = create_comment(db, reader, post)
        client.post(f"/api/comments/{comment.id}/like", headers=auth_headers(author.id))

        (listed,) = data(
            client.get(f"/api/posts/{post.id}/comments", headers=auth_headers(author.id))
        )

        assert listed["like_count"] == 1
        assert listed["is_liked"] is True

    def test_unlike(self, db, client, author, reader, post):
        comment = create_comment(db, reader, post)
        client.post(f"/api/comments/{comment.id}/like", headers=auth_headers(author.id))

        removed = client.delete(f"/api/comments/{comment.id}/like", headers=auth_headers(author.id))
        again = client.delete(f"/api/comments/{comment.id}/like", headers=auth_headers(author.id))

        assert removed.status_code == 204
        assert again.status_code == 404
