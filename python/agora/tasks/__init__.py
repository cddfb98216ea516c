"""Celery tasks for Agora.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.

Tasks are triggered by an external scheduler, e.g.:
    celery -A apps.worker.main:celery_app call purge_read_notifications
"""

from agora.tasks.maintenance import purge_expired_stories, purge_read_notifications

__all__ = ["purge_expired_stories", "purge_read_notifications"]
