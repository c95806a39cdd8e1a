"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.helpers import get_plaid_client
from database import Base, get_db
from main import app
from services.auth_service import AuthService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    auth_headers,
    linked_account,
    user,
)
from tests.fixtures.mocks import MockPlaidClient, sample_transactions


@pytest.fixture(autouse=True)
def fast_password_hashing():
    """Keep PBKDF2 cheap in tests."""
    original = AuthService.PBKDF2_ITERATIONS
    AuthService.PBKDF2_ITERATIONS = 1_000
    yield
    AuthService.PBKDF2_ITERATIONS = original


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="mock_plaid_client")
def mock_plaid_client_fixture():
    """A configured mock Plaid client with two months of transactions."""
    return MockPlaidClient(transactions=sample_transactions())


@pytest.fixture(name="client")
def client_fixture(db, mock_plaid_client):
    """Create a test client with the test database and mock Plaid client."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_plaid_client] = lambda: mock_plaid_client
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
