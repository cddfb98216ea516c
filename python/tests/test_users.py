"""Tests for profile, search, suggestion, and account endpoints."""

import pytest
from sqlalchemy import select

from agora.auth.identity_admin import FakeIdentityAdmin
from agora.db.models import Follow, User
from tests.factories import block, create_post, create_user, follow
from tests.helpers import auth_headers, create_test_user_id, data, error_code


@pytest.fixture
def alice(db):
    return create_user(db, username="alice", display_name="Alice A")


@pytest.fixture
def bob(db):
    return create_user(db, username="bob", display_name="Bobby")


class TestGetProfile:
    def test_counts_and_flags(self, client, db, alice, bob):
        carol = create_user(db, username="carol")
        follow(db, bob, alice)
        follow(db, carol, alice)
        follow(db, alice, carol)
        create_post(db, alice)
        create_post(db, alice, is_deleted=True)

        response = client.get(f"/api/users/{alice.id}", headers=auth_headers(bob.id))

        profile = data(response)
        assert profile["followers_count"] == 2
        assert profile["following_count"] == 1
        assert profile["posts_count"] == 1
        assert profile["is_self"] is False
        assert profile["is_following"] is True
        assert profile["is_blocked"] is False

    def test_anonymous_viewer_has_no_flags(self, client, alice):
        profile = data(client.get(f"/api/users/{alice.id}"))

        assert profile["is_following"] is None
        assert profile["is_blocked"] is None

    def test_counts_ignore_inactive_followers(self, client, db, alice):
        gone = create_user(db, is_active=False)
        follow(db, gone, alice)

        profile = data(client.get(f"/api/users/{alice.id}"))

        assert profile["followers_count"] == 0

    def test_profile_visible_across_block(self, client, db, alice, bob):
        block(db, alice, bob)

        profile = data(client.get(f"/api/users/{alice.id}", headers=auth_headers(bob.id)))

        assert profile["is_blocked"] is True

    def test_inactive_user_not_found(self, client, db):
        gone = create_user(db, is_active=False)

        response = client.get(f"/api/users/{gone.id}")

        assert response.status_code == 404
        assert error_code(response) == "E_USER_NOT_FOUND"

    def test_by_username_is_case_insensitive(self, client, alice):
        profile = data(client.get("/api/users/username/ALICE"))

        assert profile["id"] == str(alice.id)

    def test_by_unknown_username(self, client):
        response = client.get("/api/users/username/nobody")

        assert response.status_code == 404


class TestSearch:
    def test_matches_username_and_display_name(self, client, alice, bob):
        by_name = data(client.get("/api/users/search", params={"q": "ali"}))
        by_display = data(client.get("/api/users/search", params={"q": "bobby"}))

        assert [u["username"] for u in by_name] == ["alice"]
        assert [u["username"] for u in by_display] == ["bob"]

    @pytest.mark.parametrize("q", ["a", " b ", "x" * 101])
    def test_query_length_bounds(self, client, q):
        response = client.get("/api/users/search", params={"q": q})

        assert response.status_code == 400
        assert error_code(response) == "E_INVALID_REQUEST"

    def test_like_wildcards_are_literal(self, client, alice):
        assert data(client.get("/api/users/search", params={"q": "%%"})) == []

    def test_excludes_block_related_and_inactive(self, client, db, alice, bob):
        create_user(db, username="bob_gone", is_active=False)
        block(db, bob, alice)

        result = data(
            client.get("/api/users/search", params={"q": "bob"}, headers=auth_headers(alice.id))
        )

        assert result == []


class TestSuggestions:
    def test_most_followed_first_excluding_followed_and_blocked(self, client, db, alice, bob):
        carol = create_user(db, username="carol")
        dave = create_user(db, username="dave")
        erin = create_user(db, username="erin")
        follow(db, bob, carol)
        follow(db, erin, carol)
        follow(db, bob, dave)
        follow(db, alice, bob)
        block(db, erin, alice)

        result = data(client.get("/api/users/suggestions", headers=auth_headers(alice.id)))

        assert [u["username"] for u in result] == ["carol", "dave"]

    def test_requires_auth(self, client):
        assert client.get("/api/users/suggestions").status_code == 401


class TestUpdateProfile:
    def test_updates_given_fields_only(self, client, alice):
        response = client.patch(
            "/api/users/me",
            json={"bio": "  hi there  ", "is_private": True},
            headers=auth_headers(alice.id),
        )

        profile = data(response)
        assert profile["bio"] == "hi there"
        assert profile["is_private"] is True
        assert profile["display_name"] == "Alice A"

    def test_blank_string_clears_field(self, client, alice):
        profile = data(
            client.patch(
                "/api/users/me", json={"display_name": "  "}, headers=auth_headers(alice.id)
            )
        )

        assert profile["display_name"] is None

    def test_empty_body_rejected(self, client, alice):
        response = client.patch("/api/users/me", json={}, headers=auth_headers(alice.id))

        assert response.status_code == 400
        assert error_code(response) == "E_INVALID_REQUEST"

    def test_bio_too_long(self, client, alice):
        response = client.patch(
            "/api/users/me", json={"bio": "x" * 501}, headers=auth_headers(alice.id)
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "bio"


class TestDeleteAccount:
    def test_deactivates_scrubs_and_purges(
        self, client, db, session_factory, identity_admin, alice, bob
    ):
        follow(db, alice, bob)
        follow(db, bob, alice)

        response = client.request(
            "DELETE",
            "/api/users/me",
            json={"confirm_username": "Alice"},
            headers=auth_headers(alice.id),
        )

        assert response.status_code == 204
        with session_factory() as s:
            user = s.get(User, alice.id)
            assert user.is_active is False
            assert user.username == f"deleted_{alice.id.hex}"
            assert user.display_name is None
            assert user.deleted_at is not None
            assert s.execute(select(Follow)).scalars().all() == []
        assert identity_admin.deleted == [alice.id]

        me = client.get("/api/auth/me", headers=auth_headers(alice.id))
        assert error_code(me) == "E_ACCOUNT_INACTIVE"

    def test_username_mismatch_rejected(self, client, session_factory, identity_admin, alice):
        response = client.request(
            "DELETE",
            "/api/users/me",
            json={"confirm_username": "bob"},
            headers=auth_headers(alice.id),
        )

        assert response.status_code == 400
        with session_factory() as s:
            assert s.get(User, alice.id).is_active is True
        assert identity_admin.deleted == []

    def test_username_freed_for_reuse(self, client, alice):
        client.request(
            "DELETE",
            "/api/users/me",
            json={"confirm_username": "alice"},
            headers=auth_headers(alice.id),
        )
        response = client.post(
            "/api/auth/profile",
            json={"username": "alice"},
            headers=auth_headers(create_test_user_id()),
        )

        assert response.status_code == 201


class TestDeleteAccountPurgeFailure:
    @pytest.fixture
    def identity_admin(self):
        return FakeIdentityAdmin(fail=True)

    def test_deactivation_survives_purge_failure(self, client, session_factory, alice):
        response = client.request(
            "DELETE",
            "/api/users/me",
            json={"confirm_username": "alice"},
            headers=auth_headers(alice.id),
        )

        assert response.status_code == 204
        with session_factory() as s:
            assert s.get(User, alice.id).is_active is False


class TestRelatedUsers:
    def test_followers_and_following(self, client, db, alice, bob):
        carol = create_user(db, username="carol")
        follow(db, bob, alice)
        follow(db, carol, alice)
        follow(db, alice, carol)

        followers = data(client.get(f"/api/users/{alice.id}/followers"))
        following = data(client.get(f"/api/users/{alice.id}/following"))

        assert {u["username"] for u in followers} == {"bob", "carol"}
        assert [u["username"] for u in following] == ["carol"]

    def test_hides_block_related_for_viewer(self, client, db, alice, bob):
        carol = create_user(db, username="carol")
        follow(db, bob, alice)
        follow(db, carol, alice)
        block(db, carol, bob)

        followers = data(
            client.get(f"/api/users/{alice.id}/followers", headers=auth_headers(bob.id))
        )

        assert [u["username"] for u in followers] == ["bob"]

    def test_pagination_validation(self, client, alice):
        response = client.get(f"/api/users/{alice.id}/followers", params={"limit": 0})

        assert response.status_code == 400
        assert error_code(response) == "E_INVALID_PAGINATION"
