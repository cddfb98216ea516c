"""Celery worker entrypoint.

Run with: celery -A apps.worker.main:celery_app worker -Q maintenance,default --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in agora.tasks package - no autodiscovery.

Logging Convention:
- All task log entries include request_id, task_name, task_id when available
- Tasks accept `request_id: str | None = None` parameter for correlation
- Tasks call configure_task_logging() at start and clear_task_context() at exit

Queue Configuration:
- maintenance: retention purges (notifications, stories)
- default: General background tasks
"""

from celery.signals import worker_process_init

from agora.celery import celery_app
from agora.logging import configure_logging, get_logger

# =============================================================================
# Task Registration (explicit imports - no autodiscovery)
# =============================================================================

# Each import registers the task with the celery_app
from agora.tasks import purge_expired_stories, purge_read_notifications  # noqa: F401

# =============================================================================
# Worker Lifecycle
# =============================================================================


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when the worker process starts.

    Worker logs use the same JSON structured format as the FastAPI
    application, with request_id, task_name and task_id when available.
    """
    configure_logging()
    logger = get_logger(__name__)
    logger.info("celery_worker_started", queues=["maintenance", "default"])


# Command: celery -A apps.worker.main:celery_app worker ...
__all__ = ["celery_app"]
