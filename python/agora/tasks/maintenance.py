"""Maintenance tasks run with an elevated (service) handle.

- purge_read_notifications: delete read notifications older than the
  retention window (NOTIFICATION_RETENTION_DAYS, default 30)
- purge_expired_stories: delete stories past expires_at and soft-deleted stories

Both tasks are idempotent; re-running them only deletes what is newly eligible.
"""

from agora.celery import celery_app
from agora.config import get_settings
from agora.db.handles import open_service_handle
from agora.db.session import get_session_factory
from agora.logging import clear_task_context, configure_task_logging, get_logger
from agora.services import notifications as notifications_service
from agora.services import stories as stories_service

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="purge_read_notifications")
def purge_read_notifications(self, request_id: str | None = None) -> dict:
    """Delete read notifications past the retention window.

    Returns:
        Dict with the number of rows deleted.
    """
    configure_task_logging(request_id, "purge_read_notifications", self.request.id)
    retention_days = get_settings().notification_retention_days
    try:
        with open_service_handle(get_session_factory()) as handle:
            deleted = notifications_service.purge_read_notifications(
                handle, retention_days=retention_days
            )
        return {"status": "ok", "deleted": deleted}
    finally:
        clear_task_context()


@celery_app.task(bind=True, max_retries=0, name="purge_expired_stories")
def purge_expired_stories(self, request_id: str | None = None) -> dict:
    """Delete expired and soft-deleted stories.

    Returns:
        Dict with the number of rows deleted.
    """
    configure_task_logging(request_id, "purge_expired_stories", self.request.id)
    try:
        with open_service_handle(get_session_factory()) as handle:
            deleted = stories_service.purge_expired_stories(handle)
        return {"status": "ok", "deleted": deleted}
    finally:
        clear_task_context()
