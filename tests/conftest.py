"""
Pytest fixtures for testing
"""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ledger.application.encryption import EncryptionService
from ledger.infrastructure.db.models import User
from ledger.infrastructure.db.session import Base

# PBKDF2 at production cost makes the suite crawl
FAST_KDF_ITERATIONS = 1_000

MASTER_KEY = bytes(range(32))
CLIENT_KEY = bytes.fromhex("a1" * 32)
OTHER_CLIENT_KEY = bytes.fromhex("b2" * 32)


def make_sqlite_engine():
    """
    In-memory SQLite shared by every connection (TestClient runs sync routes
    in a worker thread), with SAVEPOINT support for begin_nested().
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_conn, connection_record):
        # let SQLAlchemy emit BEGIN itself, otherwise pysqlite breaks SAVEPOINT
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_engine():
    engine = make_sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def master_key():
    return MASTER_KEY


@pytest.fixture
def client_key():
    return CLIENT_KEY


@pytest.fixture
def other_client_key():
    """A different PIN of the same user"""
    return OTHER_CLIENT_KEY


@pytest.fixture
def user(db_session):
    """User on calendar months (no pay day)"""
    u = User(email="alice@example.com")
    db_session.add(u)
    db_session.flush()
    return u


@pytest.fixture
def encryption(db_session, master_key):
    return EncryptionService(db_session, master_key=master_key, kdf_iterations=FAST_KDF_ITERATIONS)


@pytest.fixture
def dek(encryption, user, client_key):
    """DEK of `user`, with the key-check already stored"""
    assert encryption.verify_and_ensure_key_check(user.id, client_key)
    return encryption.get_user_dek(user.id, client_key)
