"""Identity-bound data handles.

A DataHandle is the only persistence object services accept. It carries the
SQLAlchemy session together with the role and caller it was opened for, so
every query a service runs is attributable to one identity.

When APPLY_RLS_CLAIMS is enabled on Postgres, each transaction begun on the
handle's session pushes the role and JWT claims into the connection with
set_config(..., true) so Supabase row-level policies evaluate the same
identity the API does.
"""

import json
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.orm import Session, sessionmaker

from agora.errors import ApiErrorCode, UnauthenticatedError


class HandleRole(str, Enum):
    """Database role a handle acts as."""

    anon = "anon"
    authenticated = "authenticated"
    service_role = "service_role"


@dataclass
class DataHandle:
    """Request-scoped persistence handle.

    Attributes:
        db: The SQLAlchemy session.
        role: The role the handle acts as.
        caller_id: The authenticated caller, or None for anon/service handles.
    """

    db: Session
    role: HandleRole
    caller_id: UUID | None = None

    @property
    def is_elevated(self) -> bool:
        return self.role == HandleRole.service_role

    def require_caller(self) -> UUID:
        """Return the caller id or raise E_UNAUTHENTICATED."""
        if self.caller_id is None:
            raise UnauthenticatedError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
        return self.caller_id


def _claims_for(role: HandleRole, caller_id: UUID | None) -> dict:
    claims = {"role": role.value}
    if caller_id is not None:
        claims["sub"] = str(caller_id)
    return claims


def apply_rls_claims(db: Session, role: HandleRole, caller_id: UUID | None) -> None:
    """Push role and claims into every transaction begun on this session."""
    if db.get_bind().dialect.name != "postgresql":
        return

    claims_json = json.dumps(_claims_for(role, caller_id))

    @event.listens_for(db, "after_begin")
    def _set_claims(session, transaction, connection):
        connection.execute(
            text(
                "SELECT set_config('role', :role, true), "
                "set_config('request.jwt.claims', :claims, true)"
            ),
            {"role": role.value, "claims": claims_json},
        )


def open_handle(
    session_factory: sessionmaker[Session],
    role: HandleRole,
    caller_id: UUID | None = None,
    rls_claims: bool = False,
) -> DataHandle:
    """Open a new session wrapped in a handle. The caller must close handle.db."""
    db = session_factory()
    if rls_claims:
        apply_rls_claims(db, role, caller_id)
    return DataHandle(db=db, role=role, caller_id=caller_id)


@contextmanager
def open_service_handle(
    session_factory: sessionmaker[Session],
) -> Generator[DataHandle, None, None]:
    """Elevated handle for maintenance jobs and account purge bookkeeping.

    Never exposed to request handlers.
    """
    handle = open_handle(session_factory, HandleRole.service_role)
    try:
        yield handle
    finally:
        handle.db.close()


HandleFactory = Callable[[], DataHandle]
