"""Token verification implementations.

Provides:
- TokenVerifier: Protocol for token verification
- SupabaseJwksVerifier: Verifier using Supabase JWKS (used in all environments)

Note: Test-only verifiers are in tests/support/test_verifier.py
"""

import logging
import threading
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientConnectionError,
    PyJWKClientError,
)

from agora.errors import ApiError, ApiErrorCode

logger = logging.getLogger(__name__)

# Clock skew allowance in seconds
CLOCK_SKEW_SECONDS = 60


class TokenVerifier(Protocol):
    """Protocol for token verification.

    Implementations must verify JWT tokens and return decoded claims.
    """

    def verify(self, token: str) -> dict[str, Any]:
        """Verify token and return decoded claims.

        Args:
            token: The JWT token string to verify.

        Returns:
            Decoded JWT claims dictionary.

        Raises:
            ApiError(E_INVALID_TOKEN): Token is invalid, expired, or malformed.
            ApiError(E_AUTH_UNAVAILABLE): Infrastructure failure (JWKS unreachable).
        """
        ...


def _invalid(message: str) -> ApiError:
    return ApiError(ApiErrorCode.E_INVALID_TOKEN, message)


class SupabaseJwksVerifier:
    """Production token verifier using Supabase JWKS.

    Validates:
    - Signature via JWKS
    - Algorithm: RS256 or ES256 (JWKS determines which key is used)
    - exp with 60s clock skew
    - iss matches configured issuer (after normalization)
    - aud must be in configured audience list
    - sub must be valid UUID
    """

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str],
        cache_ttl: int = 3600,  # 1 hour
    ):
        """Initialize the Supabase JWKS verifier.

        Args:
            jwks_url: Full URL to the JWKS endpoint.
            issuer: Expected issuer (trailing slash will be stripped).
            audiences: List of allowed audience values.
            cache_ttl: How long to cache JWKS keys in seconds.
        """
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl

        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _new_client(self) -> PyJWKClient:
        return PyJWKClient(self.jwks_url, cache_keys=True, lifespan=self.cache_ttl)

    def _get_jwks_client(self) -> PyJWKClient:
        """Get or create the JWKS client with lazy initialization."""
        with self._jwks_lock:
            if self._jwks_client is None:
                self._jwks_client = self._new_client()
            return self._jwks_client

    def _refresh_jwks(self) -> PyJWKClient:
        """Force refresh of JWKS keys (called on kid miss)."""
        with self._jwks_lock:
            self._jwks_client = self._new_client()
            return self._jwks_client

    def verify(self, token: str) -> dict[str, Any]:
        """Verify a Supabase JWT token.

        Args:
            token: The JWT token string.

        Returns:
            Decoded claims dictionary.

        Raises:
            ApiError(E_INVALID_TOKEN): Token is invalid.
            ApiError(E_AUTH_UNAVAILABLE): JWKS fetch failed.
        """
        try:
            signing_key = self._get_signing_key(token)
        except PyJWKClientConnectionError as e:
            logger.warning("auth_failure", extra={"reason": "jwks_unavailable", "error": str(e)})
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE,
                "Authentication service unavailable",
            ) from e
        except DecodeError as e:
            logger.warning("auth_failure", extra={"reason": "decode_error"})
            raise _invalid("Invalid token format") from e

        # Supabase cloud signs with RS256, Supabase local (newer versions) with ES256
        return decode_claims(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            issuer=self.issuer,
            audiences=self.audiences,
        )

    def _get_signing_key(self, token: str) -> Any:
        """Get the signing key for the token, with one retry on kid miss.

        Raises:
            PyJWKClientConnectionError: If the JWKS endpoint cannot be reached.
            ApiError(E_INVALID_TOKEN): If kid not found after refresh.
        """
        client = self._get_jwks_client()

        try:
            return client.get_signing_key_from_jwt(token)
        except PyJWKClientConnectionError:
            raise
        except PyJWKClientError:
            logger.info("jwks_refresh", extra={"reason": "kid_miss"})
            client = self._refresh_jwks()
            try:
                return client.get_signing_key_from_jwt(token)
            except PyJWKClientConnectionError:
                raise
            except PyJWKClientError as retry_e:
                logger.warning("auth_failure", extra={"reason": "kid_not_found"})
                raise _invalid("Invalid token: signing key not found") from retry_e


# Most specific first: the PyJWT exceptions form a hierarchy under InvalidTokenError
_DECODE_FAILURES: tuple[tuple[type[InvalidTokenError], str, str], ...] = (
    (ExpiredSignatureError, "expired_token", "Token expired"),
    (InvalidSignatureError, "invalid_signature", "Invalid token signature"),
    (InvalidIssuerError, "invalid_issuer", "Invalid token issuer"),
    (InvalidAudienceError, "invalid_audience", "Invalid token audience"),
    (DecodeError, "decode_error", "Invalid token format"),
)


def decode_claims(
    token: str,
    key: Any,
    *,
    algorithms: list[str],
    issuer: str,
    audiences: list[str],
) -> dict[str, Any]:
    """Decode and validate a token against an already-resolved key.

    Claim rules: exp, iss and sub required; aud in the allowed list; 60s
    skew; sub must be a UUID.

    Raises:
        ApiError(E_INVALID_TOKEN): Any claim or signature failure.
    """
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=audiences,
            issuer=issuer,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": ["exp", "iss", "sub"], "verify_aud": True},
        )
    except InvalidTokenError as e:
        for exc_type, reason, message in _DECODE_FAILURES:
            if isinstance(e, exc_type):
                break
        else:
            reason, message = "invalid_token", "Invalid token"
        logger.warning("auth_failure", extra={"reason": reason, "error": str(e)})
        raise _invalid(message) from e

    validate_subject(payload)
    return payload


def validate_subject(payload: dict[str, Any]) -> UUID:
    """Require a UUID `sub` claim and return it.

    Raises:
        ApiError(E_INVALID_TOKEN): sub is missing or not a UUID.
    """
    sub = payload.get("sub")
    if not sub:
        logger.warning("auth_failure", extra={"reason": "missing_sub"})
        raise _invalid("Invalid token: missing sub")

    try:
        return UUID(str(sub))
    except (ValueError, TypeError) as e:
        logger.warning("auth_failure", extra={"reason": "invalid_sub"})
        raise _invalid("Invalid token: sub is not a valid UUID") from e
