"""
Pytest configuration and shared fixtures for Triage Review tests.

This module provides:
- Test database setup (SQLite in-memory)
- FastAPI TestClient configuration
- EntityStore bound to the test session
- Sample family / interaction fixtures
"""

import pytest
import os
import sys
from typing import Generator

# =============================================================================
# ENABLE TEST MODE BEFORE ANY IMPORTS
# =============================================================================
# config.py reads these at import time; main.py creates tables on import
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Add backend directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from database import Base
from storage import EntityStore
from fixtures.mock_data import BASE_TIME, create_family, create_interaction


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        hide_parameters=True,
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_db(test_engine) -> Generator[Session, None, None]:
    """Create a test database session with automatic rollback."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def override_get_db(test_db):
    """Override the get_db dependency to use test database."""
    def _override_get_db():
        try:
            yield test_db
        finally:
            pass
    return _override_get_db


@pytest.fixture(scope="function")
def store(test_db) -> EntityStore:
    return EntityStore(test_db)


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def app_instance():
    """Create a FastAPI app instance ONCE per test session."""
    from main import app as fastapi_app
    return fastapi_app


@pytest.fixture(scope="function")
def app(app_instance, override_get_db):
    """Configure the app with test database for each test."""
    from database import get_db

    app_instance.dependency_overrides[get_db] = override_get_db
    yield app_instance
    app_instance.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a TestClient for making requests to the app."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


# =============================================================================
# DATA FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def family(store):
    """(patient, child) pair."""
    return create_family(store, index=1)


@pytest.fixture(scope="function")
def sample_patient(family):
    return family[0]


@pytest.fixture(scope="function")
def sample_child(family):
    return family[1]


@pytest.fixture(scope="function")
def sample_interaction(store, sample_patient, sample_child):
    """An unreviewed routine interaction created at BASE_TIME."""
    return create_interaction(store, sample_patient, sample_child, created_at=BASE_TIME)


@pytest.fixture(scope="function")
def sample_escalation(store, sample_interaction):
    return store.create_escalation(
        interaction_id=sample_interaction.id,
        initiated_by="provider",
        severity="urgent",
        reason="Breathing difficulty",
        created_at=BASE_TIME,
    )
