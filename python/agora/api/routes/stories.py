"""Story routes.

IMPORTANT: /stories/feed and /stories/user/{user_id} must be registered
BEFORE /stories/{story_id} routes.
"""

from uuid import UUID

from fastapi import APIRouter, Response

from agora.api.deps import PageParams, RequiredHandle
from agora.responses import success_response
from agora.schemas.story import CreateStoryRequest
from agora.services import stories as stories_service

router = APIRouter()


@router.post("/stories", status_code=201)
def create_story(request: CreateStoryRequest, handle: RequiredHandle) -> dict:
    """Post a story (default lifetime 24 hours)."""
    result = stories_service.create_story(handle, request)
    return success_response(result.model_dump(mode="json"), message="Story created")


@router.get("/stories/feed")
def get_story_feed(handle: RequiredHandle) -> dict:
    """Active stories of the caller and followed accounts, grouped by author."""
    result = stories_service.get_story_feed(handle)
    return success_response([g.model_dump(mode="json") for g in result])


@router.get("/stories/user/{user_id}")
def list_user_stories(user_id: UUID, handle: RequiredHandle) -> dict:
    result = stories_service.list_user_stories(handle, user_id)
    return success_response([s.model_dump(mode="json") for s in result])


@router.post("/stories/{story_id}/view")
def view_story(story_id: UUID, handle: RequiredHandle) -> dict:
    """Record a view. Repeat views refresh the view time."""
    stories_service.view_story(handle, story_id)
    return success_response(None, message="Story viewed")


@router.get("/stories/{story_id}/viewers")
def list_story_viewers(story_id: UUID, handle: RequiredHandle, page: PageParams) -> dict:
    """List viewers of a story. Author only."""
    result = stories_service.list_story_viewers(handle, story_id, page)
    return success_response(
        [v.model_dump(mode="json") for v in result], pagination=page.as_dict()
    )


@router.delete("/stories/{story_id}", status_code=204)
def delete_story(story_id: UUID, handle: RequiredHandle) -> Response:
    stories_service.delete_story(handle, story_id)
    return Response(status_code=204)
