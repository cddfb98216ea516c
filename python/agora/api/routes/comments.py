"""Comment routes: replies, edits, deletes, and comment likes."""

from uuid import UUID

from fastapi import APIRouter, Response

from agora.api.deps import OptionalHandle, PageParams, RequiredHandle
from agora.responses import success_response
from agora.schemas.comment import UpdateCommentRequest
from agora.services import comments as comments_service

router = APIRouter()


@router.get("/comments/{comment_id}/replies")
def list_replies(comment_id: UUID, handle: OptionalHandle, page: PageParams) -> dict:
    result = comments_service.list_replies(handle, comment_id, page)
    return success_response(
        [c.model_dump(mode="json") for c in result], pagination=page.as_dict()
    )


@router.patch("/comments/{comment_id}")
def update_comment(
    comment_id: UUID, request: UpdateCommentRequest, handle: RequiredHandle
) -> dict:
    """Edit a comment. Author only."""
    result = comments_service.update_comment(handle, comment_id, request)
    return success_response(result.model_dump(mode="json"), message="Comment updated")


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(comment_id: UUID, handle: RequiredHandle) -> Response:
    comments_service.delete_comment(handle, comment_id)
    return Response(status_code=204)


@router.post("/comments/{comment_id}/like")
def like_comment(comment_id: UUID, handle: RequiredHandle) -> dict:
    comments_service.like_comment(handle, comment_id)
    return success_response(None, message="Comment liked")


@router.delete("/comments/{comment_id}/like", status_code=204)
def unlike_comment(comment_id: UUID, handle: RequiredHandle) -> Response:
    comments_service.unlike_comment(handle, comment_id)
    return Response(status_code=204)
