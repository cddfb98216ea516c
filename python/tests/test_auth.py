"""Tests for request authorization context resolution and route policies.

Tests cover:
- Required routes: missing, malformed, expired, and badly signed tokens
- Profile states: missing profile, deactivated account
- Optional routes: anonymous access, rejected tokens served anonymously
- Identity routes: profile bootstrap without an existing profile
- Verifier outages surface as E_AUTH_UNAVAILABLE
"""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from agora.app import create_app
from agora.errors import ApiError, ApiErrorCode
from agora.services.feed import FallbackFeedSource
from agora.services.rate_limit import InMemoryRateCounter
from tests.factories import create_user
from tests.helpers import (
    auth_headers,
    create_test_user_id,
    data,
    error_code,
    mint_expired_token,
    mint_token_with_bad_signature,
)


class TestRequiredPolicy:
    """GET /api/auth/me requires an authenticated, active caller."""

    def test_no_token_is_unauthenticated(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert error_code(response) == "E_UNAUTHENTICATED"

    def test_valid_token_and_profile(self, client, db):
        user = create_user(db, username="alice")

        response = client.get("/api/auth/me", headers=auth_headers(user.id))

        assert response.status_code == 200
        me = data(response)
        assert me["id"] == str(user.id)
        assert me["username"] == "alice"
        assert me["is_self"] is True

    @pytest.mark.parametrize("header", ["Token abc", "Bearer", "Basic dXNlcg=="])
    def test_malformed_header_is_invalid_token(self, client, header):
        response = client.get("/api/auth/me", headers={"Authorization": header})

        assert response.status_code == 401
        assert error_code(response) == "E_INVALID_TOKEN"

    def test_bearer_prefix_is_case_insensitive(self, client, db):
        user = create_user(db)
        token = auth_headers(user.id)["Authorization"].split(" ", 1)[1]

        response = client.get("/api/auth/me", headers={"Authorization": f"bearer {token}"})

        assert response.status_code == 200

    def test_expired_token_is_invalid(self, client, db):
        user = create_user(db)

        response = client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {mint_expired_token(user.id)}"}
        )

        assert response.status_code == 401
        assert error_code(response) == "E_INVALID_TOKEN"

    def test_bad_signature_is_invalid(self, client, db):
        user = create_user(db)
        token = mint_token_with_bad_signature(user.id)

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert error_code(response) == "E_INVALID_TOKEN"

    def test_wrong_audience_is_invalid(self, client, db):
        user = create_user(db)

        response = client.get(
            "/api/auth/me", headers=auth_headers(user.id, audience="someone-else")
        )

        assert response.status_code == 401
        assert error_code(response) == "E_INVALID_TOKEN"

    def test_missing_profile(self, client):
        response = client.get("/api/auth/me", headers=auth_headers(create_test_user_id()))

        assert response.status_code == 401
        assert error_code(response) == "E_PROFILE_NOT_FOUND"

    def test_inactive_account(self, client, db):
        user = create_user(db, is_active=False)

        response = client.get("/api/auth/me", headers=auth_headers(user.id))

        assert response.status_code == 401
        assert error_code(response) == "E_ACCOUNT_INACTIVE"


class TestOptionalPolicy:
    """GET /api/feed/explore accepts anonymous callers."""

    def test_anonymous_allowed(self, client):
        response = client.get("/api/feed/explore")

        assert response.status_code == 200
        assert data(response) == []

    def test_rejected_token_is_served_anonymously(self, client, db):
        author = create_user(db)
        token = mint_token_with_bad_signature(author.id)

        response = client.get(
            "/api/feed/explore", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200


class TestProfileBootstrap:
    """POST /api/auth/profile needs a verified token but no profile row."""

    def test_creates_profile_for_identity(self, client):
        identity = create_test_user_id()

        response = client.post(
            "/api/auth/profile",
            json={"username": "NewUser", "display_name": " New "},
            headers=auth_headers(identity),
        )

        assert response.status_code == 201
        profile = data(response)
        assert profile["id"] == str(identity)
        assert profile["username"] == "newuser"
        assert profile["display_name"] == "New"

        me = client.get("/api/auth/me", headers=auth_headers(identity))
        assert me.status_code == 200

    def test_second_profile_is_conflict(self, client, db):
        user = create_user(db, username="alice")

        response = client.post(
            "/api/auth/profile", json={"username": "other"}, headers=auth_headers(user.id)
        )

        assert response.status_code == 409
        assert error_code(response) == "E_PROFILE_EXISTS"

    def test_username_taken_case_insensitively(self, client, db):
        create_user(db, username="alice")

        response = client.post(
            "/api/auth/profile",
            json={"username": "ALICE"},
            headers=auth_headers(create_test_user_id()),
        )

        assert response.status_code == 409
        assert error_code(response) == "E_USERNAME_TAKEN"

    @pytest.mark.parametrize("username", ["ab", "has space", "x" * 31, "dash-name"])
    def test_invalid_username(self, client, username):
        response = client.post(
            "/api/auth/profile",
            json={"username": username},
            headers=auth_headers(create_test_user_id()),
        )

        assert response.status_code == 400
        assert error_code(response) == "E_USERNAME_INVALID"

    def test_requires_token(self, client):
        response = client.post("/api/auth/profile", json={"username": "nobody"})

        assert response.status_code == 401
        assert error_code(response) == "E_UNAUTHENTICATED"

    def test_rejected_token_is_not_a_missing_profile(self, client):
        token = mint_token_with_bad_signature(uuid4())

        response = client.post(
            "/api/auth/profile",
            json={"username": "nobody"},
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401
        assert error_code(response) == "E_INVALID_TOKEN"


class _UnavailableVerifier:
    def verify(self, token: str) -> dict:
        raise ApiError(ApiErrorCode.E_AUTH_UNAVAILABLE, "Authentication service unavailable")


class TestVerifierOutage:
    @pytest.fixture
    def outage_client(self, session_factory, identity_admin):
        app = create_app(
            token_verifier=_UnavailableVerifier(),
            session_factory=session_factory,
            feed_source=FallbackFeedSource(),
            rate_counter=InMemoryRateCounter(),
            identity_admin=identity_admin,
        )
        with TestClient(app) as client:
            yield client

    def test_required_route_reports_unavailable(self, outage_client):
        response = outage_client.get(
            "/api/auth/me", headers={"Authorization": "Bearer anything"}
        )

        assert response.status_code == 503
        assert error_code(response) == "E_AUTH_UNAVAILABLE"

    def test_optional_route_still_served(self, outage_client):
        response = outage_client.get(
            "/api/feed/explore", headers={"Authorization": "Bearer anything"}
        )

        assert response.status_code == 200
