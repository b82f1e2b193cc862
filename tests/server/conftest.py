"""Shared fixtures for server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from listsync.server.app import create_app
from listsync.server.database import Database
from listsync.server.models import Account


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def account(db: Database) -> Account:
    """Create a test account."""
    return db.create_account("alice")


@pytest.fixture
def other_account(db: Database) -> Account:
    """Create a second, unrelated account."""
    return db.create_account("bob")


@pytest.fixture
def client(db: Database) -> TestClient:
    """Create a test client with the app."""
    app = create_app(db)
    return TestClient(app)


@pytest.fixture
def auth_headers(db: Database, account: Account) -> dict[str, str]:
    """Create auth headers with a valid token."""
    raw_token, _ = db.create_token(account.id)
    return {"Authorization": f"Bearer {raw_token}"}
