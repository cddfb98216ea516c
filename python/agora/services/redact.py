"""Redaction, hashing, and log guard utilities.

- hash_text: stable SHA-256 hex digest for log correlation
- safe_kv: log guard that blocks forbidden keys at call site

Never-log policy:
- Bearer tokens and service keys
- Post, comment, and message bodies
- Story captions
- Raw search queries

Allowed (with suffix):
- _chars, _length: length of text
- _sha256, _hash: hash of text
"""

import hashlib
import os

FORBIDDEN_KEYS = frozenset(
    {
        "content",
        "caption",
        "bio",
        "query",
        "q",
        "bearer",
        "token",
        "authorization",
        "service_key",
        "secret",
        "password",
        "message_text",
        "raw_body",
    }
)

REDACTED_SUFFIXES = ("_sha256", "_hash", "_length", "_chars")


def hash_text(value: str) -> str:
    """SHA-256 hex digest of a string.

    Stable: same input always produces same output.
    Used for log correlation without exposing content.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _has_redacted_suffix(key: str) -> bool:
    """Check if key ends with a recognized redacted suffix."""
    return any(key.endswith(suffix) for suffix in REDACTED_SUFFIXES)


def safe_kv(*, _env: str | None = None, **kwargs) -> dict:
    """Validate that no forbidden keys are present unless already redacted.

    Raises ValueError in local/test environments if a forbidden key is used
    without a redacted suffix. In staging/prod, logs a warning instead.

    Usage:
        logger.info("post_created", **safe_kv(
            post_id=str(post.id),
            content_chars=len(content),  # OK: _chars suffix
            # content=content,           # BLOCKED: forbidden key
        ))

    Args:
        _env: Override for AGORA_ENV (test-only). If None, reads from env.
        **kwargs: Keyword arguments to validate and return.

    Returns:
        The same kwargs dict, after validation.

    Raises:
        ValueError: In local/test, if a forbidden key is used without redacted suffix.
    """
    violations = [key for key in kwargs if key in FORBIDDEN_KEYS]

    if violations:
        msg = f"Forbidden log keys without redacted suffix: {violations}"
        env = _env or os.environ.get("AGORA_ENV", "local")
        if env in ("local", "test"):
            raise ValueError(msg)

        import structlog

        _logger = structlog.get_logger("agora.services.redact")
        _logger.warning("safe_kv_violation", forbidden_keys=violations)
        for key in violations:
            kwargs.pop(key)

    return kwargs
