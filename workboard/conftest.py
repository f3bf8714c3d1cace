"""
Shared pytest fixtures.

Every test gets its own SQLite file. DATABASE_PATH is pointed at a throwaway
file before workboard.main is imported (main runs init_db() at import time),
then each fixture swaps in a per-test path.
"""

import os
import tempfile

os.environ.setdefault("DATABASE_PATH", tempfile.mktemp(suffix=".db"))

import pytest
from fastapi.testclient import TestClient

from workboard import config
from workboard.accounts import register_user
from workboard.auth_context import create_access_token, hash_password
from workboard.db import get_db, init_db, now_iso, transaction
from workboard.hierarchy import get_organization, get_user
from workboard.main import app

TEST_PASSWORD = "secret123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "workboard.db")
    monkeypatch.setattr(config, "DATABASE_PATH", path)
    init_db()
    return path


@pytest.fixture
def conn(db_path):
    connection = get_db()
    yield connection
    connection.close()


@pytest.fixture
def client(db_path):
    return TestClient(app)


@pytest.fixture
def make_org(conn):
    """Create an organization through registration; returns (organization, owner)."""
    def _make(name="Acme", owner_email=None, owner_name="Owner"):
        email = owner_email or f"owner@{name.lower().replace(' ', '')}.test"
        with transaction(conn):
            owner = register_user(conn, owner_name, email, TEST_PASSWORD, organization_name=name)
        return get_organization(conn, owner.organization_id), owner
    return _make


@pytest.fixture
def make_user(conn):
    """Insert a user straight into an organization with a stored role."""
    def _make(organization, name, role="member", email=None):
        organization_id = organization.id if organization is not None else None
        email = email or f"{name.lower()}@example.test"
        with transaction(conn):
            cur = conn.execute(
                """
                INSERT INTO users (name, email, password_hash, organization_id, role, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, email, TEST_PASSWORD_HASH, organization_id, role, now_iso()),
            )
        return get_user(conn, cur.lastrowid)
    return _make


@pytest.fixture
def auth():
    """Bearer headers for a user."""
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}
    return _headers
