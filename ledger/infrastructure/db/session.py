"""
Database session management (SQLAlchemy)

One session is one unit of work: everything a request (or a script) writes is
committed together at the end, or rolled back together on any error. Re-keying
relies on this, since every amount of a user must move to the new DEK at once.
"""
from contextlib import contextmanager
from typing import Iterator

import psycopg
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from ledger.config import get_settings


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all ORM models
    """
    pass


_engine = None
_SessionLocal = None


def get_engine():
    """Engine for DATABASE_URL, created on first use"""
    global _engine
    if _engine is None:
        _engine = create_engine(get_settings().get_sqlalchemy_url(), pool_pre_ping=True)
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)
    return _SessionLocal


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Transactional scope: commit on success, roll back on error, always close.

    Usage:
        with session_scope() as db:
            encrypt_seed_data(db)
    """
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Iterator[Session]:
    """
    FastAPI dependency: the request's unit of work

    Routes never commit; the session is committed once the route returned and
    rolled back if it raised.

    Usage:
        @router.get("/budgets/{budget_id}")
        def get_budget(budget_id: str, db: Session = Depends(get_db)):
            ...
    """
    with session_scope() as db:
        yield db


def check_db_connection() -> None:
    """
    Health check against PostgreSQL (raw psycopg)

    Raises:
        psycopg.OperationalError: database unreachable
    """
    settings = get_settings()
    with psycopg.connect(settings.DATABASE_URL, connect_timeout=3) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
            cur.fetchone()
