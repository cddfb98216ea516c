"""FastAPI dependencies for route handlers.

Route policy is chosen per route by picking one handle dependency:
- get_required_handle: authenticated, active caller required
- get_optional_handle: anonymous callers allowed (a rejected token is ignored)
- get_identity_handle: verified token required, profile row not required

Each handle owns one session, closed when the request finishes.
"""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session, sessionmaker

from agora.auth.context import AuthContext
from agora.auth.identity_admin import IdentityAdminBase
from agora.auth.middleware import get_auth_context
from agora.config import get_settings
from agora.db.handles import DataHandle, HandleRole, open_handle
from agora.errors import ApiErrorCode, UnauthenticatedError
from agora.schemas.common import Page, parse_page
from agora.services.feed import FeedComposer


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Session factory the app was created with."""
    return request.app.state.session_factory


def get_feed_composer(request: Request) -> FeedComposer:
    """Feed composer bound to the source selected at startup."""
    return request.app.state.feed_composer


def get_identity_admin(request: Request) -> IdentityAdminBase:
    return request.app.state.identity_admin


def _handle_for(
    session_factory: sessionmaker[Session], role: HandleRole, caller_id=None
) -> Generator[DataHandle, None, None]:
    handle = open_handle(
        session_factory,
        role,
        caller_id,
        rls_claims=get_settings().apply_rls_claims,
    )
    try:
        yield handle
    finally:
        handle.db.close()


def get_required_handle(
    request: Request,
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> Generator[DataHandle, None, None]:
    """Handle for an authenticated caller.

    Raises:
        ApiError: The stored credential failure, or E_UNAUTHENTICATED when no
            token was sent.
    """
    auth: AuthContext = get_auth_context(request)
    if auth.caller is None:
        if auth.failure is not None:
            raise auth.failure
        raise UnauthenticatedError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    yield from _handle_for(session_factory, HandleRole.authenticated, auth.caller.user_id)


def get_optional_handle(
    request: Request,
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> Generator[DataHandle, None, None]:
    """Handle for the caller if authenticated, else an anonymous handle."""
    auth: AuthContext = get_auth_context(request)
    if auth.caller is None:
        yield from _handle_for(session_factory, HandleRole.anon)
    else:
        yield from _handle_for(session_factory, HandleRole.authenticated, auth.caller.user_id)


def get_identity_handle(
    request: Request,
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> Generator[DataHandle, None, None]:
    """Handle bound to the verified token subject, for profile creation.

    A missing profile is expected here; any other credential failure is raised.
    """
    auth: AuthContext = get_auth_context(request)
    if auth.identity_id is None:
        if auth.failure is not None:
            raise auth.failure
        raise UnauthenticatedError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    if auth.failure is not None and auth.failure.code != ApiErrorCode.E_PROFILE_NOT_FOUND:
        raise auth.failure
    yield from _handle_for(session_factory, HandleRole.authenticated, auth.identity_id)


def get_page(
    limit: Annotated[int | None, Query(description="Page size (clamped to 100)")] = None,
    offset: Annotated[int | None, Query(description="Rows to skip")] = None,
) -> Page:
    """Validated pagination window."""
    return parse_page(limit, offset)


RequiredHandle = Annotated[DataHandle, Depends(get_required_handle)]
OptionalHandle = Annotated[DataHandle, Depends(get_optional_handle)]
IdentityHandle = Annotated[DataHandle, Depends(get_identity_handle)]
PageParams = Annotated[Page, Depends(get_page)]
Composer = Annotated[FeedComposer, Depends(get_feed_composer)]
IdentityAdmin = Annotated[IdentityAdminBase, Depends(get_identity_admin)]
