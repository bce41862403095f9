import os
import shutil
import tempfile

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

# Create a temporary SQLite database and storage root for the whole test session
_TEMP_DIR = tempfile.mkdtemp(prefix="partner_desk_tests_")
_DB_FILE = os.path.join(_TEMP_DIR, "test_partner_desk.db")
os.environ["PARTNER_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["PARTNER_STORAGE_ROOT"] = os.path.join(_TEMP_DIR, "storage")
os.environ["PARTNER_REPORTING_TIMEZONE"] = "UTC"
os.environ.setdefault("ENVIRONMENT", "test")


def _enable_sqlite_foreign_keys(engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Initialize a fresh temporary SQLite database for tests and clean it up after."""
    # Import after setting env vars so the app uses the temp DB
    from app.database import engine, init_db

    _enable_sqlite_foreign_keys(engine)
    init_db()

    yield

    engine.dispose()
    shutil.rmtree(_TEMP_DIR, ignore_errors=True)


# Each test starts with empty domain tables; the seeded admin account is kept.
@pytest.fixture(autouse=True)
def _clean_domain_tables():
    from app import crud
    from app.database import SessionLocal

    session = SessionLocal()
    try:
        crud.reset_application_data(session)
    finally:
        session.close()


@pytest.fixture
def test_db():
    """Provide a session on the shared test database with automatic rollback."""
    from app.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def memory_db():
    """Isolated in-memory database for service-level tests."""
    from app.database import Base
    from app import models  # noqa: F401

    engine = create_engine("sqlite:///:memory:", future=True)
    _enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
