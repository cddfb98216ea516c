"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: resolves the bearer token on every request into an AuthContext
- get_auth_context: accessor for the resolved context

The middleware never rejects a request. It records what it found (anonymous,
authenticated, or a rejected credential) and leaves the decision to the
route's dependency, so a route that accepts anonymous callers can still serve
a request whose token was bad.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from agora.auth.context import ANONYMOUS, AuthContext, Caller
from agora.auth.verifier import TokenVerifier
from agora.errors import ApiError, ApiErrorCode
from agora.logging import bind_caller

logger = logging.getLogger(__name__)

# Header names
AUTHORIZATION_HEADER = "authorization"

# Paths that skip credential resolution entirely
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


@dataclass(frozen=True)
class ProfileRecord:
    """Minimal profile fields the middleware needs."""

    user_id: UUID
    username: str
    is_active: bool


ProfileLoader = Callable[[UUID], ProfileRecord | None]


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware for FastAPI.

    Order of checks:
    1. Skip if public path
    2. No Authorization header: anonymous context
    3. Malformed header or token rejected by TokenVerifier: E_INVALID_TOKEN failure
    4. Verifier infrastructure failure: E_AUTH_UNAVAILABLE failure
    5. Profile row missing: E_PROFILE_NOT_FOUND failure (identity_id kept)
    6. Profile inactive: E_ACCOUNT_INACTIVE failure
    7. Otherwise: authenticated context with a Caller
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        profile_loader: ProfileLoader,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            verifier: TokenVerifier implementation for JWT verification.
            profile_loader: Function(user_id) -> ProfileRecord | None.
        """
        super().__init__(app)
        self.verifier = verifier
        self.profile_loader = profile_loader

    async def dispatch(self, request: Request, call_next) -> Response:
        """Resolve credentials and attach the AuthContext to request state."""
        if request.url.path in PUBLIC_PATHS:
            request.state.auth = ANONYMOUS
            return await call_next(request)

        context = self.resolve(request)
        request.state.auth = context
        if context.caller is not None:
            bind_caller(str(context.caller.user_id))

        return await call_next(request)

    def resolve(self, request: Request) -> AuthContext:
        """Build the AuthContext for a request. Never raises ApiError."""
        auth_header = request.headers.get(AUTHORIZATION_HEADER)
        if not auth_header:
            return ANONYMOUS

        token = _parse_bearer(auth_header)
        if token is None:
            logger.warning(
                "auth_failure",
                extra={"reason": "invalid_header_format", "request_path": request.url.path},
            )
            return AuthContext(
                failure=ApiError(
                    ApiErrorCode.E_INVALID_TOKEN, "Invalid authorization header format"
                )
            )

        try:
            payload = self.verifier.verify(token)
        except ApiError as e:
            return AuthContext(failure=e)

        identity_id = UUID(str(payload["sub"]))

        profile = self.profile_loader(identity_id)
        if profile is None:
            logger.info("auth_profile_missing", extra={"user_id": str(identity_id)})
            return AuthContext(
                failure=ApiError(ApiErrorCode.E_PROFILE_NOT_FOUND, "User profile not found"),
                identity_id=identity_id,
            )

        if not profile.is_active:
            logger.warning("auth_failure", extra={"reason": "account_inactive"})
            return AuthContext(
                failure=ApiError(ApiErrorCode.E_ACCOUNT_INACTIVE, "Account is deactivated"),
                identity_id=identity_id,
            )

        return AuthContext(
            caller=Caller(user_id=profile.user_id, username=profile.username),
            identity_id=identity_id,
        )


def _parse_bearer(auth_header: str) -> str | None:
    """Extract the token from a `Bearer <token>` header (prefix is case-insensitive)."""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def get_auth_context(request: Request) -> AuthContext:
    """Return the context resolved by AuthMiddleware (anonymous if it did not run)."""
    return getattr(request.state, "auth", ANONYMOUS)
