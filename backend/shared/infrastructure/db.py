"""
SQLAlchemy engine and sessions (2.0 style, synchronous).

The API gets a session per request through get_db; the cycle runner and
the CLI open their own with SessionLocal / get_db_context.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from shared.config.settings import DATABASE_URL


# Two connections per core plus one, at most 20; concurrent queue
# distribution opens one session per active queue
POOL_SIZE = min((os.cpu_count() or 4) * 2 + 1, 20)

# Connects lazily
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    pool_size=POOL_SIZE,
    max_overflow=10,
    pool_timeout=30,
    pool_recycle=1800,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, always closed."""
    with SessionLocal() as db:
        yield db


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Same as get_db, for code running outside a request."""
    with SessionLocal() as db:
        yield db


def safe_commit(db: Session) -> None:
    """Commit, rolling back and re-raising on failure."""
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
