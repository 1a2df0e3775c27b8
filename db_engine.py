"""
Database engine and session management for the portfolio tracker.
Uses SQLModel with SQLite for persistent storage.
Features Write-Ahead Logging (WAL) mode for improved concurrency.
"""

from sqlmodel import SQLModel, Session, create_engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[object] = None


def get_engine():
    """Get or create the database engine (WAL mode enabled for SQLite)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.is_sqlite:
            connect_args["check_same_thread"] = False  # Allow use across threads
        _engine = create_engine(
            settings.database_url,
            echo=settings.db_echo,
            connect_args=connect_args
        )
        if settings.is_sqlite:
            _enable_wal_mode()
    return _engine


def _enable_wal_mode():
    """Enable SQLite WAL mode for improved concurrent read/write performance."""
    if _engine is None:
        return

    try:
        with _engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            # Set busy timeout to 5 seconds to handle concurrent access
            conn.exec_driver_sql("PRAGMA busy_timeout=5000")
            logger.info("SQLite WAL mode enabled for concurrent access")
    except Exception as e:
        logger.warning(f"Could not enable WAL mode: {e}")


def reset_engine():
    """Dispose the cached engine so the next call picks up fresh settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_db():
    """Initialize the database and create all tables."""
    from models import Transaction

    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database initialized")


def get_session():
    """Get a new database session."""
    return Session(get_engine())
