from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from src.db.models import Base

settings = get_settings()


def _engine_kwargs(url: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": settings.log_level == "DEBUG", "pool_pre_ping": True}
    if url.startswith("sqlite"):
        # TestClient and uvicorn's threadpool share one SQLite connection pool
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_engine():
    """Get the database engine."""
    return engine


def init_db() -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")


def drop_db() -> None:
    """Drop all tutor tables."""
    Base.metadata.drop_all(bind=engine)
    logger.warning("Database tables dropped")


def check_connection() -> dict[str, Any]:
    """Connectivity + table presence for the health endpoint."""
    try:
        tables = set(inspect(engine).get_table_names())
    except Exception as e:  # Health check reports, never raises
        logger.warning(f"Database health check failed: {e}")
        return {"connected": False, "error": str(e)}

    expected = set(Base.metadata.tables)
    return {
        "connected": True,
        "tables_missing": sorted(expected - tables),
    }


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# Alias for compatibility
get_db = get_session
