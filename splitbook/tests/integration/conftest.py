"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TestingConfig points at TEST_DATABASE_URL, or an in-memory SQLite
    database when that is unset.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted child-first so tests are isolated.

Identity belongs to an external service, so tests mint their own bearer
tokens with the testing secret instead of calling a login endpoint.

Helper functions (not fixtures) are provided for common operations:
  - seed_user(app, ...)        → user id, inserted straight into the directory table
  - token_for(app, user_id)    → signed bearer token for that user
  - auth_headers(app, user_id) → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)    → group dict
  - make_expense(client, ...)  → HTTP response
  - settle(client, ...)        → HTTP response
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from splitbook.app import create_app
from splitbook.app.extensions import db as _db
from splitbook.app.models.user import User
from splitbook.app.store.sql_store import mobile_lookup_key, normalize_mobile


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.session.remove()
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes every row after each test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def seed_user(
    app,
    name: str = "Alice",
    mobile: str | None = None,
    push_token: str | None = None,
) -> str:
    """Inserts a directory user and returns its id."""
    with app.app_context():
        user = User(
            name=name,
            mobile=normalize_mobile(mobile),
            mobile_key=mobile_lookup_key(mobile),
            push_token=push_token,
        )
        _db.session.add(user)
        _db.session.commit()
        return user.id


def token_for(app, user_id: str, expires_in: timedelta = timedelta(minutes=15)) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": user_id, "iat": now, "exp": now + expires_in},
        app.config["JWT_SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
    )


def auth_headers(app, user_id: str) -> dict:
    return {"Authorization": f"Bearer {token_for(app, user_id)}"}


def make_group(client, app, creator_id: str, members: list[str], name: str = "Test Group") -> dict:
    resp = client.post(
        "/api/v1/groups",
        json={"name": name, "members": members},
        headers=auth_headers(app, creator_id),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_expense(
    client,
    app,
    caller_id: str,
    split_between: list[str],
    amount: str = "300.00",
    title: str = "Test Expense",
    **extra,
):
    """
    Creates an expense and returns the HTTP response.
    Extra keyword arguments are sent as additional body fields
    (group_id, paid_by, split_type, split_details, date, category, ...).
    """
    payload: dict = {
        "title": title,
        "amount": amount,
        "date": "2026-01-15",
        "category": "Food",
        "split_between": split_between,
    }
    payload.update(extra)
    return client.post(
        "/api/v1/expenses",
        json=payload,
        headers=auth_headers(app, caller_id),
    )


def settle(client, app, caller_id: str, from_user_id: str, to_user_id: str, amount: str, **extra):
    payload = {"from_user_id": from_user_id, "to_user_id": to_user_id, "amount": amount}
    payload.update(extra)
    return client.post(
        "/api/v1/expenses/settlements",
        json=payload,
        headers=auth_headers(app, caller_id),
    )
