"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (PostgreSQL) and SQLite support for tests
- Table definitions for users, groups, posts and streaks
- Translation of driver failures into StorageUnavailableError
"""
from typing import Optional, Generator
from contextlib import contextmanager
import logging
import os

from sqlalchemy import (
    create_engine,
    event,
    MetaData,
    Table,
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    JSON,
    Text,
    Index,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    text,
)
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func

from backend.core.config import settings
from backend.core.errors import StorageUnavailableError

logger = logging.getLogger("gymbro.database")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        _engine = create_engine(
            url,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Drop the current engine so the next call re-initializes from settings."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
            session.commit()
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI-friendly DB dependency that yields a Session and closes it."""
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_errors(operation: str):
    """
    Re-raise driver-level failures as StorageUnavailableError.

    Integrity violations are data errors, not availability errors, and pass through
    untouched so callers can resolve them.
    """
    try:
        yield
    except IntegrityError:
        raise
    except (OperationalError, DBAPIError) as exc:
        logger.error(
            "storage.unavailable",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise StorageUnavailableError(f"Storage unavailable during {operation}") from exc


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


def truncate_all_tables() -> None:
    """Delete every row, children first. Portable across PostgreSQL and SQLite."""
    engine = get_engine()
    with engine.begin() as conn:
        for table in reversed(metadata.sorted_tables):
            conn.execute(table.delete())


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users (upserted from the identity provider's verified subject id)
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('display_name', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_users_created_at', 'created_at'),
)

# Accountability groups
groups = Table(
    'groups',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('name', String(200), nullable=False),
    Column('description', Text, nullable=False, server_default=''),
    Column('invite_code', String(16), nullable=False, unique=True),
    Column('max_members', Integer, nullable=False, server_default='10'),
    Column('created_by', String(100), nullable=False, index=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Group membership; one row per (group_id, user_id)
group_members = Table(
    'group_members',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('group_id', String(36), ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(100), nullable=False),
    Column('is_admin', Boolean, nullable=False, server_default='false'),
    Column('joined_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('group_id', 'user_id', name='uq_group_members_group_user'),
    Index('idx_group_members_user', 'user_id'),
)

# Posts (check-ins and other group content)
posts = Table(
    'posts',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('group_id', String(36), ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(100), nullable=False),
    Column('content', Text, nullable=False, server_default=''),
    Column('image_url', Text, nullable=True),
    Column('post_type', String(20), nullable=False, server_default='checkin'),
    Column('created_at', DateTime(timezone=True), nullable=False),
    # Composite index for group feed: (group_id, created_at)
    Index('idx_posts_group_created', 'group_id', 'created_at'),
)

# Streak records; one row per (user_id, group_id)
streaks = Table(
    'streaks',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('group_id', String(36), nullable=False),
    Column('current_streak', Integer, nullable=False, server_default='0'),
    Column('longest_streak', Integer, nullable=False, server_default='0'),
    Column('last_check_in_date', Date, nullable=True),
    Column('streak_start_date', Date, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'group_id', name='uq_streaks_user_group'),
    CheckConstraint('current_streak >= 0', name='ck_streaks_current_non_negative'),
    CheckConstraint('longest_streak >= current_streak', name='ck_streaks_longest_ge_current'),
    # Leaderboard: (group_id, current_streak)
    Index('idx_streaks_group_current', 'group_id', 'current_streak'),
    # Sweep predicate: current_streak > 0 AND last_check_in_date < cutoff
    Index('idx_streaks_current_last_checkin', 'current_streak', 'last_check_in_date'),
)

# Sweep job runs
streak_sweep_runs = Table(
    'streak_sweep_runs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('reference_date', Date, nullable=False, index=True),
    Column('started_at', DateTime(timezone=True), nullable=False),
    Column('finished_at', DateTime(timezone=True), nullable=True),
    Column('status', String(20), nullable=False),  # success | failed
    Column('stats_json', JSON, nullable=True),
    Column('error', Text, nullable=True),
)
