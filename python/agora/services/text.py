"""Text parsing for mentions, hashtags, and usernames."""

import re

MENTION_PATTERN = re.compile(r"@([A-Za-z0-9_]+)")
HASHTAG_PATTERN = re.compile(r"#([A-Za-z0-9_]+)")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,30}$")

MAX_TAG_LENGTH = 50


def extract_mentions(text: str | None) -> list[str]:
    """Return mentioned handles, lower-cased and de-duplicated, in first-seen order.

    >>> extract_mentions("hi @Bob and @bob, meet @carol")
    ['bob', 'carol']
    """
    if not text:
        return []
    seen: dict[str, None] = {}
    for match in MENTION_PATTERN.finditer(text):
        seen.setdefault(match.group(1).lower(), None)
    return list(seen)


def extract_hashtags(text: str | None) -> list[str]:
    """Return hashtags found in text, lower-cased and de-duplicated."""
    if not text:
        return []
    seen: dict[str, None] = {}
    for match in HASHTAG_PATTERN.finditer(text):
        seen.setdefault(match.group(1).lower(), None)
    return list(seen)


def normalize_tags(content: str | None, explicit: list[str] | None = None) -> list[str]:
    """Tag set for a post: hashtags in content union explicit tags.

    Explicit tags may be given with or without a leading '#'. Blank tags and
    tags longer than MAX_TAG_LENGTH are dropped from both sources. Result is sorted.
    """
    tags = {tag for tag in extract_hashtags(content) if len(tag) <= MAX_TAG_LENGTH}
    for raw in explicit or []:
        tag = raw.strip().lstrip("#").lower()
        if tag and len(tag) <= MAX_TAG_LENGTH:
            tags.add(tag)
    return sorted(tags)


def is_valid_username(username: str) -> bool:
    """3-30 characters of letters, digits, and underscore."""
    return bool(USERNAME_PATTERN.match(username))
