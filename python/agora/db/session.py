"""Session factory and transaction helpers.

Services never open sessions themselves; they receive one inside a
DataHandle (agora.db.handles) and scope writes with the helpers below:

- transaction(): commit on success, roll back on any exception
- savepoint(): isolate a best-effort write so its failure leaves the
  surrounding session usable
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from agora.db.engine import get_engine

_SessionLocal: sessionmaker[Session] | None = None


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Session factory bound to engine (the process-wide engine when None).

    Objects stay readable after commit so services can return ORM rows
    that routes serialize after the transaction closes.
    """
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def get_session_factory() -> sessionmaker[Session]:
    """Process-wide factory, created on first use (API startup, Celery tasks)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = create_session_factory()
    return _SessionLocal


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit on success, roll back and re-raise on any exception.

    Usage:
        with transaction(db):
            db.add(post)
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


@contextmanager
def savepoint(db: Session) -> Generator[None, None, None]:
    """Run the block inside a SAVEPOINT, then commit the outer transaction.

    A failure rolls back only the savepoint and propagates; callers that
    treat the write as best-effort catch it and call db.rollback().
    """
    with db.begin_nested():
        yield
    db.commit()
