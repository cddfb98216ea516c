"""Shared schema pieces: pagination and user summaries."""

from dataclasses import dataclass
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from agora.errors import ApiErrorCode, InvalidRequestError

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class Page:
    """Validated (limit, offset) window."""

    limit: int = DEFAULT_LIMIT
    offset: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"limit": self.limit, "offset": self.offset}


def parse_page(limit: int | None = None, offset: int | None = None) -> Page:
    """Validate pagination parameters.

    limit defaults to 20 and is clamped to 100; offset defaults to 0.

    Raises:
        InvalidRequestError(E_INVALID_PAGINATION): limit < 1 or offset < 0.
    """
    if limit is None:
        limit = DEFAULT_LIMIT
    if offset is None:
        offset = 0
    if limit < 1:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_PAGINATION, "limit must be at least 1")
    if offset < 0:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_PAGINATION, "offset must be at least 0")
    return Page(limit=min(limit, MAX_LIMIT), offset=offset)


class UserSummary(BaseModel):
    """Author / actor block embedded in other resources."""

    id: UUID
    username: str
    display_name: str | None = None
    avatar_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class CountOut(BaseModel):
    """Single counter response (unread counts)."""

    count: int
