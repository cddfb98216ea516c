"""Store capabilities shared by services.

insert_or_reject_duplicate is the single place unique-pair inserts happen.
The database constraint is authoritative: two racing requests for the same
(subject, user) pair both attempt the insert, exactly one row survives, and
the loser gets a Conflict. No driver-specific error code is inspected; any
integrity violation on the insert counts as a duplicate.
"""

from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.errors import ApiErrorCode, ConflictError
from agora.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def insert_or_reject_duplicate(
    db: Session,
    row: T,
    code: ApiErrorCode = ApiErrorCode.E_CONFLICT,
    message: str = "Resource already exists",
) -> T:
    """Insert row inside a SAVEPOINT; raise ConflictError if it already exists.

    The surrounding transaction stays usable after a rejected insert.

    Raises:
        ConflictError: The row violates a uniqueness (or other integrity) constraint.
    """
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError as e:
        logger.info(
            "duplicate_insert_rejected",
            table=getattr(row, "__tablename__", type(row).__name__),
            error_class=type(e.orig).__name__,
        )
        raise ConflictError(code, message) from e
    return row
