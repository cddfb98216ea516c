"""Feed routes.

All reads go through the FeedComposer stored on app state, which wraps the
feed source selected at startup.
"""

from typing import Annotated

from fastapi import APIRouter, Query

from agora.api.deps import Composer, OptionalHandle, PageParams, RequiredHandle
from agora.responses import success_response

router = APIRouter()


@router.get("/feed")
def get_home_feed(handle: RequiredHandle, composer: Composer, page: PageParams) -> dict:
    """Caller's own posts and posts of followed accounts, newest first."""
    result = composer.get_home_feed(handle, page)
    return success_response(
        [p.model_dump(mode="json") for p in result], pagination=page.as_dict()
    )


@router.get("/feed/explore")
def get_explore_feed(handle: OptionalHandle, composer: Composer, page: PageParams) -> dict:
    """Public posts, most liked first."""
    result = composer.get_explore_feed(handle, page)
    return success_response(
        [p.model_dump(mode="json") for p in result], pagination=page.as_dict()
    )


@router.get("/feed/trending")
def get_trending_hashtags(
    handle: OptionalHandle,
    composer: Composer,
    limit: Annotated[int, Query(ge=1, description="Maximum tags (clamped to 50)")] = 10,
    timeframe: Annotated[str, Query(description="One of 1h, 24h, 7d, 30d")] = "24h",
) -> dict:
    """Most used tags on recent public posts."""
    result = composer.get_trending_hashtags(handle, limit=limit, timeframe=timeframe)
    return success_response([t.model_dump(mode="json") for t in result])


@router.get("/feed/recommended")
def get_recommended_posts(
    handle: RequiredHandle,
    composer: Composer,
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum results (1-100)")] = 20,
) -> dict:
    """Public posts sharing tags with posts the caller liked."""
    result = composer.get_recommended_posts(handle, limit=limit)
    return success_response([p.model_dump(mode="json") for p in result])
