"""
Database configuration and session management.

Provides SQLAlchemy engine, session factory, and session context
managers for the learning-layer repositories.
"""

from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings
from .db_models import Base

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL gets a connection pool; SQLite is configured for use across
    threads (and an in-memory URL shares one connection).
    """
    if database_url.startswith("postgresql://"):
        return create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=5,  # Max 5 connections in pool
            max_overflow=10,  # Allow 10 additional connections when pool full
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,  # Recycle connections after 1 hour
            echo=False,
        )

    kwargs = {"connect_args": {"check_same_thread": False}, "echo": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(database_url, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


def create_session_factory(db_engine: Engine) -> sessionmaker:
    """Session factory bound to an engine (expire_on_commit off so rows outlive the session)."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)


logger.info(f"Database URL: {DATABASE_URL.split('@')[-1] if '@' in DATABASE_URL else DATABASE_URL}")

engine = create_db_engine(DATABASE_URL)
SessionLocal = create_session_factory(engine)


def init_db(db_engine: Engine = None):
    """
    Initialize database - create all tables.
    Should be called on application startup.
    """
    try:
        Base.metadata.create_all(bind=db_engine or engine)
        logger.info("Database tables created/verified")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


@contextmanager
def get_db_context(session_factory: sessionmaker = None):
    """
    Context manager for database sessions outside FastAPI.

    Commits on success, rolls back on exception.

    Usage:
        with get_db_context() as db:
            pattern = db.query(DBLearningPattern).filter_by(user_id="u1").first()
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_database_health(session_factory: sessionmaker = None) -> dict:
    """
    Check database connectivity.
    Used by health check endpoint.
    """
    try:
        with get_db_context(session_factory) as db:
            db.execute(text("SELECT 1"))

            return {
                "database_connected": True,
                "database_type": "postgresql" if DATABASE_URL.startswith("postgresql://") else "sqlite",
            }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "database_connected": False,
            "database_error": str(e),
        }
