"""Business logic services.

This module contains service-layer functions that implement business logic.
Services are called by route handlers and orchestrate database operations
through a DataHandle.
"""

from agora.services.bootstrap import create_profile
from agora.services.notifications import notify, notify_bulk, notify_mentions

__all__ = [
    "create_profile",
    "notify",
    "notify_bulk",
    "notify_mentions",
]
