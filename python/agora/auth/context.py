"""Per-request authorization context.

The auth middleware resolves one AuthContext per request and stores it on
request.state. Route dependencies then apply the route's policy
(required, optional, or identity-only) to it.
"""

from dataclasses import dataclass
from uuid import UUID

from agora.db.handles import HandleRole
from agora.errors import ApiError


@dataclass(frozen=True)
class Caller:
    """The authenticated, active profile behind a request."""

    user_id: UUID
    username: str


@dataclass(frozen=True)
class AuthContext:
    """Outcome of resolving the request's credentials.

    Attributes:
        caller: The active profile, or None for anonymous requests.
        failure: Why credentials were rejected, if they were presented and rejected.
        identity_id: Verified token subject, set even when the profile row is missing.
    """

    caller: Caller | None = None
    failure: ApiError | None = None
    identity_id: UUID | None = None

    @property
    def role(self) -> HandleRole:
        if self.caller is None:
            return HandleRole.anon
        return HandleRole.authenticated

    @property
    def is_authenticated(self) -> bool:
        return self.caller is not None


ANONYMOUS = AuthContext()
