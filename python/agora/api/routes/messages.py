"""Direct message routes.

IMPORTANT: /messages/conversations, /messages/unread-count and
/messages/item/{message_id} must be registered BEFORE /messages/{user_id}.
"""

from uuid import UUID

from fastapi import APIRouter, Response

from agora.api.deps import PageParams, RequiredHandle
from agora.responses import success_response
from agora.schemas.common import CountOut
from agora.schemas.message import EditMessageRequest, SendMessageRequest
from agora.services import messages as messages_service

router = APIRouter()


@router.get("/messages/conversations")
def list_conversations(handle: RequiredHandle, page: PageParams) -> dict:
    """Latest message per counterpart, most recent first."""
    result = messages_service.list_conversations(handle, page)
    return success_response(
        [c.model_dump(mode="json") for c in result], pagination=page.as_dict()
    )


@router.get("/messages/unread-count")
def get_unread_message_count(handle: RequiredHandle) -> dict:
    count = messages_service.get_unread_message_count(handle)
    return success_response(CountOut(count=count).model_dump())


@router.patch("/messages/item/{message_id}")
def edit_message(message_id: UUID, request: EditMessageRequest, handle: RequiredHandle) -> dict:
    """Edit a sent message within the edit window."""
    result = messages_service.edit_message(handle, message_id, request.content)
    return success_response(result.model_dump(mode="json"), message="Message updated")


@router.delete("/messages/item/{message_id}", status_code=204)
def delete_message(message_id: UUID, handle: RequiredHandle) -> Response:
    messages_service.delete_message(handle, message_id)
    return Response(status_code=204)


@router.get("/messages/{user_id}")
def get_conversation(user_id: UUID, handle: RequiredHandle, page: PageParams) -> dict:
    """Conversation with a user, oldest first. Incoming messages are marked read."""
    result = messages_service.get_conversation(handle, user_id, page)
    return success_response(
        [m.model_dump(mode="json") for m in result], pagination=page.as_dict()
    )


@router.post("/messages/{user_id}", status_code=201)
def send_message(user_id: UUID, request: SendMessageRequest, handle: RequiredHandle) -> dict:
    result = messages_service.send_message(handle, user_id, request.content)
    return success_response(result.model_dump(mode="json"), message="Message sent")
