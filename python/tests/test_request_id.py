"""Tests for X-Request-ID middleware.

Tests cover:
- Request ID generation when missing
- Request ID preservation when valid
- Request ID normalization (UUID lowercase)
- Request ID replacement when invalid
- Request ID presence on auth failures and rate-limit rejections
- Request ID in error response body
"""

from uuid import UUID

import pytest

from agora.middleware.request_id import is_valid_request_id, normalize_request_id
from tests.factories import create_user
from tests.helpers import auth_headers


@pytest.fixture
def user(db):
    return create_user(db, username="alice")


class TestRequestIdMiddleware:
    """Tests for X-Request-ID middleware."""

    def test_request_id_generated_when_missing(self, client, user):
        """Request ID is generated when not provided."""
        response = client.get("/api/auth/me", headers=auth_headers(user.id))

        assert response.status_code == 200
        UUID(response.headers["X-Request-ID"])

    def test_request_id_preserved_when_valid(self, client, user):
        """Valid non-UUID request IDs are preserved."""
        response = client.get(
            "/api/auth/me",
            headers={**auth_headers(user.id), "X-Request-ID": "abc_def-123"},
        )

        assert response.headers["X-Request-ID"] == "abc_def-123"

    def test_request_id_uuid_normalized_to_lowercase(self, client, user):
        response = client.get(
            "/api/auth/me",
            headers={
                **auth_headers(user.id),
                "X-Request-ID": "550E8400-E29B-41D4-A716-446655440000",
            },
        )

        assert response.headers["X-Request-ID"] == "550e8400-e29b-41d4-a716-446655440000"

    @pytest.mark.parametrize("bad_id", ["bad id with spaces", "a" * 200])
    def test_request_id_replaced_when_invalid(self, client, user, bad_id):
        """Invalid or over-long request IDs are replaced with a fresh UUID."""
        response = client.get(
            "/api/auth/me",
            headers={**auth_headers(user.id), "X-Request-ID": bad_id},
        )

        new_id = response.headers["X-Request-ID"]
        assert new_id != bad_id
        UUID(new_id)

    def test_request_id_present_on_auth_failure(self, client):
        """Auth failures still include X-Request-ID in response."""
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert "X-Request-ID" in response.headers

    def test_error_body_request_id_matches_header(self, client, user):
        response = client.get(
            "/api/posts/00000000-0000-0000-0000-000000000000",
            headers=auth_headers(user.id),
        )

        assert response.status_code == 404
        assert response.json()["request_id"] == response.headers["X-Request-ID"]


class TestRequestIdValidation:
    """Tests for request ID validation edge cases."""

    @pytest.mark.parametrize(
        "value,valid",
        [
            ("request.id.with.dots", True),
            ("550e8400-e29b-41d4-a716-446655440000", True),
            ("has/slash", False),
            ("", False),
            ("x" * 128, True),
            ("x" * 129, False),
        ],
    )
    def test_is_valid_request_id(self, value, valid):
        assert is_valid_request_id(value) is valid

    def test_non_uuid_ids_kept_verbatim(self):
        assert normalize_request_id("MiXeD-Case") == "MiXeD-Case"
