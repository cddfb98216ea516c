"""Per-caller request rate limiting.

Keys requests by the authenticated caller (`user:<id>`) or, for anonymous
requests, by client address (`ip:<host>`), and answers 429 E_RATE_LIMITED
once the key exceeds its budget for the window.

Registered before AuthMiddleware so that it runs after it and can see the
resolved caller.
"""

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from agora.auth.middleware import PUBLIC_PATHS, get_auth_context
from agora.errors import ApiErrorCode
from agora.logging import get_logger
from agora.responses import error_response
from agora.services.rate_limit import RateCounter, get_rate_counter

logger = get_logger(__name__)


def rate_limit_key(request: Request) -> str:
    """Counter key for the request: caller id when known, else client address."""
    context = get_auth_context(request)
    if context.caller is not None:
        return f"user:{context.caller.user_id}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests over `limit` per `window_seconds` with 429.

    Args:
        app: The ASGI application.
        limit: Maximum requests per key per window.
        window_seconds: Window length.
        counter: RateCounter to use; the process-global counter when None.
    """

    def __init__(
        self,
        app,
        limit: int,
        window_seconds: int,
        counter: RateCounter | None = None,
    ):
        super().__init__(app)
        self.limit = limit
        self.window_seconds = window_seconds
        self.counter = counter

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        counter = self.counter or get_rate_counter()
        key = rate_limit_key(request)
        if not counter.increment_and_check(key, self.window_seconds, self.limit):
            logger.warning("rate_limit_blocked", key_kind=key.split(":", 1)[0])
            return JSONResponse(
                status_code=429,
                content=error_response(
                    ApiErrorCode.E_RATE_LIMITED,
                    "Too many requests, please try again later",
                ),
            )

        return await call_next(request)
