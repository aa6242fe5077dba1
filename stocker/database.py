"""
Database connection and session management.
Provides the engine and session factory backing the candlestick table.
"""
import logging
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from stocker.config import Settings
from stocker.models import Base

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> Engine:
    """Create a database engine with connection pooling suited to the URL."""
    url = settings.database_url
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection, otherwise each checkout sees an empty database
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool, echo=False)
        return create_engine(url, connect_args=connect_args, pool_pre_ping=True, echo=False)

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_pre_ping=True,  # Verify connections before using
        echo=False,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine):
    """Initialize database schema. Safe to call multiple times."""
    logger.info("Initializing database schema...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema initialized successfully")


@contextmanager
def get_db_session(session_factory: sessionmaker) -> Session:
    """
    Context manager for database sessions outside of a request.
    Commits on success, rolls back and re-raises on error.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database session error: {e}")
        raise
    finally:
        session.close()


def get_db(request: Request):
    """
    Dependency for FastAPI endpoints.
    Provides a per-request database session that auto-closes.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
