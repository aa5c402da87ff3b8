"""
Pytest configuration and fixtures.
"""

from __future__ import annotations

import os

import pytest
from sqlalchemy.orm import Session

# Force test DB when pytest runs; don't inherit from .env (avoids polluting nobetci_dev)
_test_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
_test_url = f"postgresql+psycopg://{_test_user}@localhost:5432/nobetci_test"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", _test_url)
os.environ["DB_CONNECT_TIMEOUT"] = "3"
os.environ["STRICT_SCRAPED_DATE_VALIDATION"] = "false"
os.environ["STRICT_SCRAPED_DATE_KEYS"] = ""
os.environ["ALLOW_STATIC_FALLBACK"] = "false"
os.environ["ALLOW_FALLBACK_FOR_SECONDARY"] = "false"


@pytest.fixture(autouse=True)
def _clear_loader_caches() -> None:
    """Clear cached settings and YAML loaders before and after each test.

    Tests that monkeypatch environment variables rely on get_settings()
    being rebuilt; loader caches are cleared for symmetry.
    """
    from nobetci.config import get_settings
    from nobetci.parsers.districts import load_district_lexicon
    from nobetci.services.default_endpoints import load_default_endpoints

    get_settings.cache_clear()
    load_district_lexicon.cache_clear()
    load_default_endpoints.cache_clear()
    yield
    get_settings.cache_clear()
    load_district_lexicon.cache_clear()
    load_default_endpoints.cache_clear()


@pytest.fixture(scope="session")
def _ensure_migrations() -> None:
    """Create the test DB if needed and run migrations once per test session.

    Skips every DB test when PostgreSQL is not reachable.
    """
    import subprocess
    import sys

    from sqlalchemy import create_engine, text
    from sqlalchemy.exc import OperationalError

    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    # CREATE DATABASE requires autocommit
    _create_db_url = f"postgresql+psycopg://{_test_user}@localhost:5432/postgres"
    engine = create_engine(_create_db_url, connect_args={"connect_timeout": 3})
    try:
        with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = 'nobetci_test'")
            ).scalar()
            if not exists:
                conn.execute(text("CREATE DATABASE nobetci_test"))
    except OperationalError as exc:
        pytest.skip(f"PostgreSQL not available: {exc}")
    finally:
        engine.dispose()

    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        cwd=project_root,
        capture_output=True,
        text=True,
        timeout=60,
        env=os.environ.copy(),
    )
    assert result.returncode == 0, f"alembic upgrade head failed: {result.stderr}"


@pytest.fixture
def db(_ensure_migrations: None) -> Session:
    """Database session for persistence tests. All changes are rolled back after each test."""
    from nobetci.db import engine

    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()
