"""Database configuration and session management for SQLite.

This module configures the SQLite database engine with settings optimized
for a web application: WAL mode for concurrent access and foreign key
enforcement for data integrity.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Allows concurrent readers while writing.
      The reminder poller writes ``fired_at`` while API requests read events.

    - **Foreign Keys**: Disabled by default in SQLite. We enable it so that
      reminders, overrides and calendars keep referential integrity.

    - **check_same_thread=False**: Required for FastAPI, whose dependency
      injection may pass sessions between threads.

Timestamps:
    SQLite has no timezone-aware datetime type. ``UTCDateTime`` stores every
    instant as naive UTC and hands back aware UTC datetimes, so instants
    compare correctly whatever offset the caller supplied.
"""
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC

from sqlalchemy import DateTime, TypeDecorator
from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from agenda.core.config import settings

connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class UTCDateTime(TypeDecorator):
    """Aware-UTC datetime column backed by a naive SQLite DATETIME."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


def create_db_and_tables():
    """Create all database tables."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Run a block of writes as one transaction.

    Everything staged on ``session`` inside the block is committed once on
    exit. Any exception rolls the whole unit back and is re-raised, so a
    cascade either lands completely or not at all.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
