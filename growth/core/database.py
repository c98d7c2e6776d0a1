"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Table definitions for users, tracked activity, lead scores and sequence triggers
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Float, Index, ForeignKey
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func, select
import logging
import os

from growth.core.config import settings

logger = logging.getLogger("growth")

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

    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


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
        _engine = create_engine(url, echo=False)
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


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


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(select(1))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users table. current_tier is a denormalized copy of lead_scores.tier.
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('email', String(320), nullable=True),
    Column('current_tier', String(20), nullable=False, server_default='browser'),
    Column('engagement_score', Float, nullable=False, server_default='0'),
    Column('personalization_settings', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_users_current_tier', 'current_tier'),
)

# Tracked interactions (page views, CTA clicks, scroll depth, sessions, ...)
interactions = Table(
    'interactions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('session_id', String(100), nullable=True),
    Column('interaction_type', String(50), nullable=False),
    Column('metadata', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Composite index for counter reads: (user_id, interaction_type)
    Index('idx_interactions_user_type', 'user_id', 'interaction_type'),
    Index('idx_interactions_user_created', 'user_id', 'created_at'),
)

# Assessment tool runs
tool_usage = Table(
    'tool_usage',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('tool_name', String(100), nullable=False),
    Column('is_completed', Boolean, nullable=False, server_default='false'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_tool_usage_user_completed', 'user_id', 'is_completed'),
)

# Content engagement (views, downloads, shares)
content_engagement = Table(
    'content_engagement',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('content_id', String(100), nullable=False),
    Column('engagement_type', String(50), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_content_engagement_user_type', 'user_id', 'engagement_type'),
)

# One lead score record per user
lead_scores = Table(
    'lead_scores',
    metadata,
    Column('user_id', String(100), ForeignKey('app_users.user_id'), primary_key=True),
    Column('page_views_score', Float, nullable=False, server_default='0'),
    Column('tool_usage_score', Float, nullable=False, server_default='0'),
    Column('content_downloads_score', Float, nullable=False, server_default='0'),
    Column('webinar_registration_score', Float, nullable=False, server_default='0'),
    Column('time_on_site_score', Float, nullable=False, server_default='0'),
    Column('scroll_depth_score', Float, nullable=False, server_default='0'),
    Column('cta_engagement_score', Float, nullable=False, server_default='0'),
    Column('breakdown_total', Integer, nullable=False, server_default='0'),
    Column('score', Float, nullable=False, server_default='0'),
    Column('previous_score', Float, nullable=False, server_default='0'),
    Column('tier', String(20), nullable=False, server_default='browser'),
    Column('previous_tier', String(20), nullable=False, server_default='browser'),
    Column('scoring_data', JSON, nullable=True),
    Column('tier_progression', JSON, nullable=False),
    Column('calculated_at', DateTime(timezone=True), nullable=True),
    Column('tier_changed_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_lead_scores_tier', 'tier'),
    Index('idx_lead_scores_score', 'score'),
    Index('idx_lead_scores_tier_changed_at', 'tier_changed_at'),
)

# Sequence triggers written by the rq worker
sequence_triggers = Table(
    'sequence_triggers',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('sequence_id', String(100), nullable=False),
    Column('context', JSON, nullable=True),
    Column('status', String(20), nullable=False, server_default='pending'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_sequence_triggers_user_sequence', 'user_id', 'sequence_id'),
)
