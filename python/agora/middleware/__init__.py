"""Middleware modules for Agora API."""

from agora.middleware.rate_limit import RateLimitMiddleware
from agora.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = ["RateLimitMiddleware", "RequestIDMiddleware", "REQUEST_ID_HEADER"]
