"""Database configuration for the partner desk application."""
from __future__ import annotations

import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import DEFAULT_SQLITE_PATH, get_settings

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().database_url


def _create_engine(url: str):
    """Create a SQLAlchemy engine for the given URL, handling sqlite connect args."""
    if url.startswith("sqlite"):
        DEFAULT_SQLITE_PATH.parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False}, future=True)
    return create_engine(url, pool_pre_ping=True, future=True)


# On local development environments, if the configured database (commonly
# PostgreSQL) is unreachable we fall back to the SQLite file. In production
# we re-raise so startup fails loudly.
try:
    engine = _create_engine(DATABASE_URL)
    with engine.connect() as _conn:  # type: ignore[var-annotated]
        pass
except SQLAlchemyError as e:  # pragma: no cover - environment dependent
    if get_settings().environment == "development":
        fallback = f"sqlite:///{DEFAULT_SQLITE_PATH}"
        logger.warning("[database] Could not connect to %r (%s); falling back to %s", DATABASE_URL, e, fallback)
        DATABASE_URL = fallback
        engine = _create_engine(DATABASE_URL)
    else:
        raise

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a database session."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    """Ensure database tables exist and create the default admin user if needed."""

    from app import models  # noqa: F401  (import ensures model metadata is registered)
    from app.auth import User

    Base.metadata.create_all(bind=engine, checkfirst=True)

    session = SessionLocal()
    try:
        admin_count = session.query(User).filter(User.username == "admin").count()
        if admin_count == 0:
            session.add(User.create_user("admin", "admin", role="admin"))
            session.commit()
            logger.info("[init_db] Created default admin user (username: admin)")
    except SQLAlchemyError:
        session.rollback()
        logger.exception("[init_db] Could not seed the admin user")
        raise
    finally:
        session.close()
