"""Profile bootstrap and current-caller endpoints."""

from fastapi import APIRouter

from agora.api.deps import IdentityHandle, RequiredHandle
from agora.responses import success_response
from agora.schemas.user import CreateProfileRequest
from agora.services import bootstrap as bootstrap_service
from agora.services import users as users_service

router = APIRouter()


@router.post("/auth/profile", status_code=201)
def create_profile(request: CreateProfileRequest, handle: IdentityHandle) -> dict:
    """Create the profile for a verified identity on first login.

    The token must verify; the profile row must not exist yet.
    """
    result = bootstrap_service.create_profile(handle, request)
    return success_response(result.model_dump(mode="json"), message="Profile created")


@router.get("/auth/me")
def get_me(handle: RequiredHandle) -> dict:
    """Get the caller's own profile."""
    result = users_service.get_me(handle)
    return success_response(result.model_dump(mode="json"))
