"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, middleware, and routes.

Token Verification:
- All environments (local, test, staging, prod) use SupabaseJwksVerifier
- Runtime always verifies JWTs via Supabase JWKS endpoint
- Tests inject a verifier through create_app(token_verifier=...)

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- RateLimitMiddleware is added FIRST so it runs after auth and can key on the caller

Order of registration:
1. RateLimitMiddleware (runs third)
2. AuthMiddleware (runs second)
3. RequestIDMiddleware (runs first - outermost)

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (resolves the AuthContext)
3. RateLimitMiddleware (counts the request)
4. Route handler
5. Middleware unwinds; RequestIDMiddleware logs and sets the response header

Startup Resources:
- The feed source is probed once and wrapped in a FeedComposer on app.state
- Redis (when REDIS_URL is set) backs the shared rate counter
- The identity admin client is closed at shutdown
"""

from contextlib import asynccontextmanager
from uuid import UUID

import redis
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from agora.api.routes import create_api_router
from agora.auth.identity_admin import IdentityAdminBase, create_identity_admin
from agora.auth.middleware import AuthMiddleware, ProfileLoader, ProfileRecord
from agora.auth.verifier import SupabaseJwksVerifier, TokenVerifier
from agora.config import get_settings
from agora.db.models import User
from agora.db.session import get_session_factory
from agora.errors import ApiError
from agora.logging import configure_logging, get_logger
from agora.middleware.rate_limit import RateLimitMiddleware
from agora.middleware.request_id import RequestIDMiddleware
from agora.responses import (
    api_error_handler,
    http_exception_handler,
    integrity_error_handler,
    storage_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from agora.services.feed import FeedComposer, FeedSource, probe_feed_source
from agora.services.rate_limit import RateCounter, RedisRateCounter, set_rate_counter

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


def create_profile_loader(session_factory: sessionmaker[Session]) -> ProfileLoader:
    """Create the profile lookup the auth middleware runs per request.

    Each call opens and closes its own short-lived session.
    """

    def load(user_id: UUID) -> ProfileRecord | None:
        db = session_factory()
        try:
            user = db.get(User, user_id)
            if user is None:
                return None
            return ProfileRecord(user_id=user.id, username=user.username, is_active=user.is_active)
        finally:
            db.close()

    return load


def create_token_verifier() -> SupabaseJwksVerifier:
    """Create the token verifier using Supabase JWKS.

    All environments (local, test, staging, prod) use the same verifier.
    Only the configuration values (JWKS URL, issuer, audiences) change.
    """
    settings = get_settings()

    return SupabaseJwksVerifier(
        jwks_url=settings.supabase_jwks_url,
        issuer=settings.normalized_issuer,
        audiences=settings.audience_list,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle resources.

    - Connects Redis for the shared rate counter unless a counter was injected
    - Closes the identity admin client and Redis on shutdown
    """
    settings = get_settings()

    redis_client = None
    if settings.redis_url and not app.state.rate_counter_injected:
        try:
            redis_client = redis.Redis.from_url(
                settings.redis_url, decode_responses=True, socket_timeout=5
            )
            redis_client.ping()
            set_rate_counter(RedisRateCounter(redis_client))
            logger.info("redis_rate_counter_enabled")
        except redis.RedisError as e:
            logger.warning("redis_client_init_failed", error_class=type(e).__name__)
            redis_client = None

    app.state.redis_client = redis_client

    yield

    app.state.identity_admin.close()
    if redis_client is not None:
        redis_client.close()
    logger.info("app_shutdown_complete")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
    session_factory: sessionmaker[Session] | None = None,
    feed_source: FeedSource | None = None,
    rate_counter: RateCounter | None = None,
    identity_admin: IdentityAdminBase | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).
        session_factory: Session factory for handles and profile lookups.
        feed_source: Feed source to use instead of probing the database.
        rate_counter: Rate counter to use instead of the process-global one.
        identity_admin: Identity admin client for account purges.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    session_factory = session_factory or get_session_factory()

    app = FastAPI(
        title="Agora API",
        description="Backend API for Agora - a social network",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Shared state read by route dependencies
    app.state.session_factory = session_factory
    if feed_source is None:
        feed_source = probe_feed_source(session_factory.kw["bind"])
    app.state.feed_composer = FeedComposer(feed_source)
    app.state.identity_admin = identity_admin or create_identity_admin(settings)
    app.state.rate_counter_injected = rate_counter is not None

    # Use router factory to avoid import-time settings loading
    app.include_router(create_api_router(prefix=settings.api_prefix))

    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_s,
        counter=rate_counter,
    )

    # Add auth middleware (resolves credentials on all requests except public paths)
    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=token_verifier or create_token_verifier(),
            profile_loader=create_profile_loader(session_factory),
        )
        logger.info("auth_middleware_enabled", env=settings.agora_env.value)

    add_request_id_middleware(app)
    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    Must be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including auth failures.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
