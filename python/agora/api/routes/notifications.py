"""Notification routes.

IMPORTANT: static routes (/notifications/unread-count, /read-all,
/preferences) must be registered BEFORE /notifications/{notification_id}.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from agora.api.deps import PageParams, RequiredHandle
from agora.responses import success_response
from agora.schemas.common import CountOut
from agora.schemas.notification import UpdatePreferencesRequest
from agora.services import notifications as notifications_service

router = APIRouter()


@router.get("/notifications")
def list_notifications(
    handle: RequiredHandle,
    page: PageParams,
    unread_only: Annotated[bool, Query(description="Only unread notifications")] = False,
) -> dict:
    """List the caller's notifications, newest first."""
    result = notifications_service.list_notifications(handle, page, unread_only=unread_only)
    return success_response(
        [n.model_dump(mode="json") for n in result], pagination=page.as_dict()
    )


@router.get("/notifications/unread-count")
def get_unread_count(handle: RequiredHandle) -> dict:
    count = notifications_service.get_unread_count(handle)
    return success_response(CountOut(count=count).model_dump())


@router.post("/notifications/read-all")
def mark_all_read(handle: RequiredHandle) -> dict:
    """Mark every notification read. Safe to repeat."""
    updated = notifications_service.mark_all_read(handle)
    return success_response({"updated": updated}, message="All notifications marked read")


@router.get("/notifications/preferences")
def get_preferences(handle: RequiredHandle) -> dict:
    result = notifications_service.get_preferences(handle)
    return success_response(result.model_dump(mode="json"))


@router.put("/notifications/preferences")
def update_preferences(request: UpdatePreferencesRequest, handle: RequiredHandle) -> dict:
    """Enable or disable notification types."""
    result = notifications_service.update_preferences(handle, request)
    return success_response(result.model_dump(mode="json"), message="Preferences updated")


@router.post("/notifications/{notification_id}/read")
def mark_notification_read(notification_id: UUID, handle: RequiredHandle) -> dict:
    notifications_service.mark_notification_read(handle, notification_id)
    return success_response(None, message="Notification marked read")
