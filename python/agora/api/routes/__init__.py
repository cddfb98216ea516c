"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from agora.api.routes.auth import router as auth_router
from agora.api.routes.comments import router as comments_router
from agora.api.routes.feed import router as feed_router
from agora.api.routes.health import router as health_router
from agora.api.routes.messages import router as messages_router
from agora.api.routes.notifications import router as notifications_router
from agora.api.routes.posts import router as posts_router
from agora.api.routes.stories import router as stories_router
from agora.api.routes.users import router as users_router


def create_api_router(prefix: str = "/api") -> APIRouter:
    """Create and configure the API router.

    /health is mounted at the root; every resource route lives under prefix.

    Args:
        prefix: Mount point for resource routes (API_PREFIX).

    Returns:
        Configured APIRouter with all routes registered.
    """
    resources = APIRouter(prefix=prefix)
    resources.include_router(auth_router, tags=["auth"])
    resources.include_router(users_router, tags=["users"])
    resources.include_router(feed_router, tags=["feed"])
    resources.include_router(posts_router, tags=["posts"])
    resources.include_router(comments_router, tags=["comments"])
    resources.include_router(stories_router, tags=["stories"])
    resources.include_router(messages_router, tags=["messages"])
    resources.include_router(notifications_router, tags=["notifications"])

    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(resources)
    return api_router


__all__ = ["create_api_router"]
