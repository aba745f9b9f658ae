"""Shared fixtures: an in-memory SQLite database per test."""

from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool

from product_scout.config_loader import load_full_config
from product_scout.db.session import create_engine, create_session_factory, init_db

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    """Fresh in-memory engine with all tables created."""
    engine = create_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def full_config():
    """The shipped YAML configuration."""
    return load_full_config(CONFIG_DIR)
