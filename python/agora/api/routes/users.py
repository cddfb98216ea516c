"""User routes: profiles, search, suggestions, follows, and blocks.

Routes are transport-only:
- Resolve the handle for the route's auth policy
- Call exactly one service function
- Return success_response(...) or raise ApiError

IMPORTANT: Static routes (/users/search, /users/me, ...) must be registered
BEFORE dynamic routes (/users/{user_id}) to prevent UUID path capture.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, Response

from agora.api.deps import IdentityAdmin, OptionalHandle, PageParams, RequiredHandle
from agora.responses import success_response
from agora.schemas.user import DeleteAccountRequest, UpdateProfileRequest
from agora.services import graph as graph_service
from agora.services import posts as posts_service
from agora.services import users as users_service

router = APIRouter()


# =============================================================================
# Static routes (MUST be before /users/{user_id} routes)
# =============================================================================


@router.get("/users/search")
def search_users(
    handle: OptionalHandle,
    page: PageParams,
    q: Annotated[str, Query(description="Username or display name fragment (2-100 chars)")],
) -> dict:
    """Search active users by username or display name."""
    result = users_service.search_users(handle, q, page)
    return success_response(
        [u.model_dump(mode="json") for u in result], pagination=page.as_dict()
    )


@router.get("/users/suggestions")
def get_suggestions(
    handle: RequiredHandle,
    limit: Annotated[int, Query(ge=1, description="Maximum results (clamped to 50)")] = 10,
) -> dict:
    """Suggest accounts to follow, most-followed first."""
    result = users_service.get_suggestions(handle, limit)
    return success_response([u.model_dump(mode="json") for u in result])


@router.get("/users/blocked")
def list_blocked_users(handle: RequiredHandle, page: PageParams) -> dict:
    """List accounts the caller has blocked."""
    result = graph_service.list_blocked_users(handle, page)
    return success_response(
        [u.model_dump(mode="json") for u in result], pagination=page.as_dict()
    )


@router.patch("/users/me")
def update_profile(request: UpdateProfileRequest, handle: RequiredHandle) -> dict:
    """Update the caller's profile."""
    result = users_service.update_profile(handle, request)
    return success_response(result.model_dump(mode="json"), message="Profile updated")


@router.delete("/users/me", status_code=204)
def delete_account(
    request: DeleteAccountRequest,
    handle: RequiredHandle,
    identity_admin: IdentityAdmin,
) -> Response:
    """Delete the caller's account.

    The profile is deactivated and scrubbed; the auth record is purged
    afterwards on a best-effort basis.
    """
    users_service.delete_account(handle, request.confirm_username, identity_admin)
    return Response(status_code=204)


@router.get("/users/username/{username}")
def get_profile_by_username(username: str, handle: OptionalHandle) -> dict:
    """Get a profile by username."""
    result = users_service.get_profile_by_username(handle, username)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Dynamic routes
# =============================================================================


@router.get("/users/{user_id}")
def get_profile(user_id: UUID, handle: OptionalHandle) -> dict:
    """Get a profile with counts and the caller's relationship flags."""
    result = users_service.get_profile_by_id(handle, user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/users/{user_id}/posts")
def list_user_posts(user_id: UUID, handle: OptionalHandle, page: PageParams) -> dict:
    """List a user's posts visible to the caller, newest first."""
    result = posts_service.list_user_posts(handle, user_id, page)
    return success_response(
        [p.model_dump(mode="json") for p in result], pagination=page.as_dict()
    )


@router.get("/users/{user_id}/followers")
def list_followers(user_id: UUID, handle: OptionalHandle, page: PageParams) -> dict:
    result = users_service.list_related_users(handle, user_id, page, direction="followers")
    return success_response(
        [u.model_dump(mode="json") for u in result], pagination=page.as_dict()
    )


@router.get("/users/{user_id}/following")
def list_following(user_id: UUID, handle: OptionalHandle, page: PageParams) -> dict:
    result = users_service.list_related_users(handle, user_id, page, direction="following")
    return success_response(
        [u.model_dump(mode="json") for u in result], pagination=page.as_dict()
    )


@router.post("/users/{user_id}/follow")
def follow_user(user_id: UUID, handle: RequiredHandle) -> dict:
    """Follow a user. Duplicate follows return 409."""
    graph_service.follow_user(handle, user_id)
    return success_response(None, message="Followed")


@router.delete("/users/{user_id}/follow", status_code=204)
def unfollow_user(user_id: UUID, handle: RequiredHandle) -> Response:
    graph_service.unfollow_user(handle, user_id)
    return Response(status_code=204)


@router.post("/users/{user_id}/block")
def block_user(user_id: UUID, handle: RequiredHandle) -> dict:
    """Block a user. Follow edges in both directions are removed."""
    graph_service.block_user(handle, user_id)
    return success_response(None, message="Blocked")


@router.delete("/users/{user_id}/block", status_code=204)
def unblock_user(user_id: UUID, handle: RequiredHandle) -> Response:
    graph_service.unblock_user(handle, user_id)
    return Response(status_code=204)
