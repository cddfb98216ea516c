"""Authentication and authorization module.

This module provides:
- Token verification (Supabase JWKS verifier)
- Auth middleware that resolves each request into an AuthContext
- Visibility predicates
- The Supabase admin client used for account purge

Note: Test-only verifiers are in tests/support/test_verifier.py
"""

from agora.auth.context import AuthContext, Caller
from agora.auth.middleware import AuthMiddleware, get_auth_context
from agora.auth.verifier import SupabaseJwksVerifier, TokenVerifier

__all__ = [
    "AuthContext",
    "AuthMiddleware",
    "Caller",
    "get_auth_context",
    "SupabaseJwksVerifier",
    "TokenVerifier",
]
