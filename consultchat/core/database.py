"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session factory construction
- Connection pooling with sane defaults
- Table definitions for profiles, usage counters and checkout records
- Dialect-aware upsert statements (PostgreSQL / SQLite)
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    inspect,
    text,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql import func

logger = logging.getLogger("consultchat")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour


def init_engine(database_url: Optional[str]) -> Engine:
    """
    Build the SQLAlchemy engine for the configured database.

    PostgreSQL gets a bounded connection pool; SQLite (dev/tests) uses the
    driver defaults with cross-thread access enabled so sync handlers running
    in the threadpool can share it.
    """
    if not database_url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )

    return create_engine(
        database_url,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,
        echo=False,  # Set to True for SQL query logging
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Context manager for database sessions.

    Commits on success, rolls back and re-raises on error.

    Usage:
        with session_scope(factory) as session:
            session.execute(...)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def upsert(session: Session, table: Table):
    """Return a dialect-specific INSERT supporting ``on_conflict_do_update``."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table)
    if dialect == "sqlite":
        return sqlite_insert(table)
    raise NotImplementedError(f"Upsert not supported for dialect: {dialect}")


def create_all_tables(engine: Engine) -> None:
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    metadata.create_all(bind=engine)


def check_connection(engine: Engine) -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


def missing_tables(engine: Engine) -> list[str]:
    """Names of required tables not present in the database."""
    present = set(inspect(engine).get_table_names())
    return [table.name for table in metadata.sorted_tables if table.name not in present]


# Subscription mirror: one row per identity-provider user
user_profiles = Table(
    'user_profiles',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('plan', String(20), nullable=True),  # blue, green, gold
    Column('status', String(20), nullable=True),  # active, incomplete, past_due, canceled
    Column('customer_id', String(255), nullable=True),
    Column('subscription_id', String(255), nullable=True),
    Column('current_period_end', DateTime(timezone=True), nullable=True),
    Column('cancel_at', DateTime(timezone=True), nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_user_profiles_subscription_id', 'subscription_id'),
)

# Per-user answer counters
usage_counts = Table(
    'usage_counts',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('total_answers', Integer, nullable=False, server_default='0'),
    Column('free_answers_used', Integer, nullable=False, server_default='0'),
    Column('last_answer_at', DateTime(timezone=True), nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Checkout audit trail: one row per provider checkout session
checkout_sessions = Table(
    'checkout_sessions',
    metadata,
    Column('session_id', String(255), primary_key=True),
    Column('user_id', String(100), nullable=False),
    Column('plan', String(20), nullable=False),
    Column('status', String(20), nullable=False),  # open, complete, expired
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_checkout_sessions_user_id', 'user_id'),
)
