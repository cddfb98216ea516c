"""Celery application configuration.

Central configuration for Celery used by both the API (for enqueuing)
and the worker (for executing tasks).

Usage:
    from agora.celery import celery_app

    # Enqueue task:
    celery_app.send_task("purge_read_notifications")

    # Or import task directly:
    from agora.tasks import purge_expired_stories
    purge_expired_stories.apply_async(queue="maintenance")
"""

from celery import Celery

from agora.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery("agora")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

# Queue routing for maintenance tasks
celery_app.conf.task_routes = {
    "purge_read_notifications": {"queue": "maintenance"},
    "purge_expired_stories": {"queue": "maintenance"},
}

# Default queue
celery_app.conf.task_default_queue = "default"

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False


def get_celery_app() -> Celery:
    """Get the Celery application instance.

    Returns:
        Configured Celery application.
    """
    return celery_app
