"""Tests for the Supabase Auth admin client used by account deletion."""

from uuid import uuid4

import httpx
import pytest
import respx
from httpx import Response

from agora.auth.identity_admin import (
    FakeIdentityAdmin,
    IdentityAdminError,
    SupabaseIdentityAdmin,
    create_identity_admin,
)
from agora.config import clear_settings_cache, get_settings

SUPABASE_URL = "http://supabase.test"


@pytest.fixture
def admin():
    admin = SupabaseIdentityAdmin(supabase_url=f"{SUPABASE_URL}/", service_key="service-key")
    yield admin
    admin.close()


def _user_url(user_id) -> str:
    return f"{SUPABASE_URL}/auth/v1/admin/users/{user_id}"


class TestSupabaseIdentityAdmin:
    @respx.mock
    def test_delete_sends_service_credentials(self, admin):
        user_id = uuid4()
        route = respx.delete(_user_url(user_id)).mock(return_value=Response(200, json={}))

        admin.delete_user(user_id)

        assert route.call_count == 1
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["apikey"] == "service-key"

    @respx.mock
    def test_missing_user_counts_as_deleted(self, admin):
        user_id = uuid4()
        respx.delete(_user_url(user_id)).mock(return_value=Response(404))

        admin.delete_user(user_id)

    @respx.mock
    def test_provider_error_raises_with_status(self, admin):
        user_id = uuid4()
        respx.delete(_user_url(user_id)).mock(return_value=Response(500))

        with pytest.raises(IdentityAdminError) as exc_info:
            admin.delete_user(user_id)

        assert exc_info.value.status_code == 500

    @respx.mock
    def test_unreachable_raises(self, admin):
        user_id = uuid4()
        respx.delete(_user_url(user_id)).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(IdentityAdminError) as exc_info:
            admin.delete_user(user_id)

        assert exc_info.value.status_code is None

    def test_shared_client_is_not_closed(self):
        client = httpx.Client()
        admin = SupabaseIdentityAdmin(SUPABASE_URL, "service-key", http_client=client)

        admin.close()

        assert not client.is_closed
        client.close()


class TestFakeIdentityAdmin:
    def test_records_deletions(self):
        admin = FakeIdentityAdmin()
        user_id = uuid4()

        admin.delete_user(user_id)

        assert admin.deleted == [user_id]

    def test_failure_mode(self):
        with pytest.raises(IdentityAdminError):
            FakeIdentityAdmin(fail=True).delete_user(uuid4())


class TestCreateIdentityAdmin:
    def test_supabase_when_configured(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
        clear_settings_cache()

        admin = create_identity_admin(get_settings())

        assert isinstance(admin, SupabaseIdentityAdmin)
        admin.close()

    def test_fake_without_service_key(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        clear_settings_cache()

        assert isinstance(create_identity_admin(get_settings()), FakeIdentityAdmin)
