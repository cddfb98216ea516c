"""Post routes: posts, likes, bookmarks, shares, and post comments.

Routes are transport-only. No domain logic or raw DB access in routes.

IMPORTANT: /posts/bookmarks must be registered BEFORE /posts/{post_id}.
"""

from uuid import UUID

from fastapi import APIRouter, Response

from agora.api.deps import OptionalHandle, PageParams, RequiredHandle
from agora.responses import success_response
from agora.schemas.comment import CreateCommentRequest
from agora.schemas.post import CreatePostRequest, UpdatePostRequest
from agora.services import comments as comments_service
from agora.services import posts as posts_service

router = APIRouter()


@router.post("/posts", status_code=201)
def create_post(request: CreatePostRequest, handle: RequiredHandle) -> dict:
    """Create a post. Mentioned users are notified."""
    result = posts_service.create_post(handle, request)
    return success_response(result.model_dump(mode="json"), message="Post created")


@router.get("/posts/bookmarks")
def list_bookmarks(handle: RequiredHandle, page: PageParams) -> dict:
    """List the caller's bookmarked posts."""
    result = posts_service.list_bookmarks(handle, page)
    return success_response(
        [p.model_dump(mode="json") for p in result], pagination=page.as_dict()
    )


@router.get("/posts/{post_id}")
def get_post(post_id: UUID, handle: OptionalHandle) -> dict:
    result = posts_service.get_post(handle, post_id)
    return success_response(result.model_dump(mode="json"))


@router.patch("/posts/{post_id}")
def update_post(post_id: UUID, request: UpdatePostRequest, handle: RequiredHandle) -> dict:
    """Edit a post. Author only."""
    result = posts_service.update_post(handle, post_id, request)
    return success_response(result.model_dump(mode="json"), message="Post updated")


@router.delete("/posts/{post_id}", status_code=204)
def delete_post(post_id: UUID, handle: RequiredHandle) -> Response:
    """Soft-delete a post. Author only."""
    posts_service.delete_post(handle, post_id)
    return Response(status_code=204)


@router.post("/posts/{post_id}/like")
def like_post(post_id: UUID, handle: RequiredHandle) -> dict:
    """Like a post. Duplicate likes return 409."""
    posts_service.like_post(handle, post_id)
    return success_response(None, message="Post liked")


@router.delete("/posts/{post_id}/like", status_code=204)
def unlike_post(post_id: UUID, handle: RequiredHandle) -> Response:
    posts_service.unlike_post(handle, post_id)
    return Response(status_code=204)


@router.get("/posts/{post_id}/likes")
def list_post_likes(post_id: UUID, handle: OptionalHandle, page: PageParams) -> dict:
    """List users who liked a post."""
    result = posts_service.list_post_likes(handle, post_id, page)
    return success_response(
        [u.model_dump(mode="json") for u in result], pagination=page.as_dict()
    )


@router.post("/posts/{post_id}/bookmark")
def bookmark_post(post_id: UUID, handle: RequiredHandle) -> dict:
    posts_service.bookmark_post(handle, post_id)
    return success_response(None, message="Post bookmarked")


@router.delete("/posts/{post_id}/bookmark", status_code=204)
def unbookmark_post(post_id: UUID, handle: RequiredHandle) -> Response:
    posts_service.unbookmark_post(handle, post_id)
    return Response(status_code=204)


@router.post("/posts/{post_id}/share")
def share_post(post_id: UUID, handle: RequiredHandle) -> dict:
    """Share a post. Duplicate shares return 409."""
    posts_service.share_post(handle, post_id)
    return success_response(None, message="Post shared")


@router.get("/posts/{post_id}/comments")
def list_comments(post_id: UUID, handle: OptionalHandle, page: PageParams) -> dict:
    """List top-level comments on a post, oldest first."""
    result = comments_service.list_comments(handle, post_id, page)
    return success_response(
        [c.model_dump(mode="json") for c in result], pagination=page.as_dict()
    )


@router.post("/posts/{post_id}/comments", status_code=201)
def create_comment(post_id: UUID, request: CreateCommentRequest, handle: RequiredHandle) -> dict:
    """Comment on a post or reply to one of its comments."""
    result = comments_service.create_comment(handle, post_id, request)
    return success_response(result.model_dump(mode="json"), message="Comment created")
