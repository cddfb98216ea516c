"""Supabase Auth admin client.

The only identity-provider operation the API performs with elevated
credentials is purging an auth user after their profile has been
deactivated. Everything else (sign-up, sessions, password reset) stays with
Supabase Auth.
"""

from abc import ABC, abstractmethod
from uuid import UUID

import httpx

from agora.config import Settings
from agora.logging import get_logger

logger = get_logger(__name__)


class IdentityAdminError(Exception):
    """Raised when the identity provider refuses or fails an admin call."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class IdentityAdminBase(ABC):
    """Abstract base class for identity admin implementations."""

    @abstractmethod
    def delete_user(self, user_id: UUID) -> None:
        """Permanently delete the auth user.

        A user that no longer exists counts as deleted.

        Raises:
            IdentityAdminError: If the provider rejects the call or is unreachable.
        """
        ...


class SupabaseIdentityAdmin(IdentityAdminBase):
    """Production client for the Supabase Auth admin API.

    Uses httpx against {supabase_url}/auth/v1/admin.
    """

    def __init__(
        self,
        supabase_url: str,
        service_key: str,
        http_client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        """Initialize the admin client.

        Args:
            supabase_url: Supabase project URL (e.g., https://xxx.supabase.co).
            service_key: Supabase service role key.
            http_client: Shared client; a private one is created when None.
            timeout: Per-request timeout in seconds.
        """
        self._admin_url = f"{supabase_url.rstrip('/')}/auth/v1/admin"
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def delete_user(self, user_id: UUID) -> None:
        url = f"{self._admin_url}/users/{user_id}"
        try:
            response = self._client.delete(url, headers=self._headers)
        except httpx.HTTPError as e:
            raise IdentityAdminError(f"Identity admin unreachable: {type(e).__name__}") from e

        if response.status_code == 404:
            logger.info("identity_user_already_absent", user_id=str(user_id))
            return
        if response.status_code >= 400:
            raise IdentityAdminError(
                f"Identity admin rejected delete: {response.status_code}",
                status_code=response.status_code,
            )

        logger.info("identity_user_deleted", user_id=str(user_id))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class FakeIdentityAdmin(IdentityAdminBase):
    """In-memory identity admin for local development and tests."""

    def __init__(self, fail: bool = False):
        self.deleted: list[UUID] = []
        self.fail = fail

    def delete_user(self, user_id: UUID) -> None:
        if self.fail:
            raise IdentityAdminError("Identity admin unavailable", status_code=503)
        self.deleted.append(user_id)

    def close(self) -> None:
        pass


def create_identity_admin(
    settings: Settings, http_client: httpx.Client | None = None
) -> IdentityAdminBase:
    """Build the configured identity admin.

    Returns:
        SupabaseIdentityAdmin if SUPABASE_URL and SUPABASE_SERVICE_KEY are set,
        FakeIdentityAdmin otherwise (local/test only; staging/prod require both).
    """
    if settings.supabase_url and settings.supabase_service_key:
        return SupabaseIdentityAdmin(
            supabase_url=settings.supabase_url,
            service_key=settings.supabase_service_key,
            http_client=http_client,
        )

    logger.info("identity_admin_fake_enabled", env=settings.agora_env.value)
    return FakeIdentityAdmin()
