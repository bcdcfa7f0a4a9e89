"""
Database connection and session management.

SQLAlchemy ORM over PostgreSQL in production and SQLite for local
development. Routes receive a session per request through get_db().
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from virtuclass.config import DATABASE_URL

# SQLite does not support pool_size, max_overflow, or pool_pre_ping
engine_kwargs = {"echo": False}

if DATABASE_URL.startswith("postgresql"):
    engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
    })
elif DATABASE_URL.startswith("sqlite"):
    # FastAPI serves sync routes from a thread pool
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **engine_kwargs)


def enable_sqlite_pragmas(target_engine):
    """Turn on WAL journaling and foreign key enforcement for a SQLite engine."""
    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if DATABASE_URL.startswith("sqlite"):
    enable_sqlite_pragmas(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def get_db():
    """
    FastAPI dependency that provides a database session.

    The session is closed after the response is produced, returning the
    connection to the pool even when the handler raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Create all tables directly (SQLite local development and tests).
    PostgreSQL deployments use the Alembic migrations instead.
    """
    # Registers every model on Base.metadata
    import virtuclass.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
