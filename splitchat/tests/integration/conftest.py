"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the TestingConfig database (in-memory SQLite unless
    TEST_DATABASE_URL points somewhere else).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - headers(username)           → {"X-Username": username}
  - register(client, ...)       → user dict
  - make_group(client, ...)     → group state dict
  - add_member(...)             → HTTP response
  - open_event(...)             → event dict
  - make_expense(...)           → HTTP response
  - setup_trio(client)          → (group_id) with alice (admin), bob and carol

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from splitchat.app import create_app
from splitchat.app.extensions import db as _db
from splitchat.app.relay import relay


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
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM events"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def hub(app):
    """The app's socket hub; connections opened in a test are closed after it."""
    hub = relay.hub_for(app)
    before = set(hub._clients)
    yield hub
    for sid, connection in list(hub._clients.items()):
        if sid not in before:
            connection.disconnect()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def headers(username: str) -> dict:
    """Returns the identity header dict for use in test requests."""
    return {"X-Username": username}


def register(client, username: str = "alice", payment_handle: str | None = None) -> dict:
    resp = client.post(
        "/api/v1/users/",
        json={"username": username, "payment_handle": payment_handle},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_group(client, username: str, name: str = "Test Group") -> dict:
    """Creates a group; `username` becomes admin and first member."""
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=headers(username),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, admin: str, group_id: str, username: str):
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"username": username},
        headers=headers(admin),
    )


def open_event(client, username: str, group_id: str, title: str = "Dinner") -> dict:
    resp = client.put(
        f"/api/v1/groups/{group_id}/event",
        json={"title": title},
        headers=headers(username),
    )
    assert resp.status_code == 201, f"open_event failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_expense(
    client,
    username: str,
    group_id: str,
    payer: str,
    amount: str,
    debtor: str | None = None,
    split_between: list[str] | None = None,
    item_name: str = "Test Expense",
    expense_id: str | None = None,
):
    """
    Adds an expense and returns the HTTP response.
    Pass exactly one of debtor / split_between.
    """
    payload: dict = {"item_name": item_name, "amount": amount, "payer": payer}
    if debtor is not None:
        payload["debtor"] = debtor
    if split_between is not None:
        payload["split_between"] = split_between
    if expense_id is not None:
        payload["id"] = expense_id

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=headers(username),
    )


def setup_trio(client, with_event: bool = True) -> str:
    """
    alice (admin, handle alice-v), bob (handle bob-v) and carol (no handle)
    in one group, optionally with an open event. Returns the group id.
    """
    register(client, "alice", payment_handle="alice-v")
    register(client, "bob", payment_handle="bob-v")
    register(client, "carol")
    group_id = make_group(client, "alice")["group_id"]
    assert add_member(client, "alice", group_id, "bob").status_code == 201
    assert add_member(client, "alice", group_id, "carol").status_code == 201
    if with_event:
        open_event(client, "alice", group_id)
    return group_id
