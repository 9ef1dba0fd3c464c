"""
Shared test fixtures and helpers for the Quarry test suite.
"""

import pytest

from quarry import DbManager
from quarry.models import signals


# ============================================================================
# Schema
# ============================================================================

SCHEMA = [
    """CREATE TABLE user (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL DEFAULT '',
        email TEXT,
        status INTEGER NOT NULL DEFAULT 1,
        score REAL,
        country_id INTEGER,
        create_time DATETIME,
        update_time DATETIME
    )""",
    """CREATE TABLE profile (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        email TEXT,
        age INTEGER
    )""",
    """CREATE TABLE post (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        title TEXT,
        status INTEGER NOT NULL DEFAULT 1,
        delete_time INTEGER
    )""",
    """CREATE TABLE comment (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id INTEGER,
        body TEXT
    )""",
    """CREATE TABLE role (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT
    )""",
    """CREATE TABLE user_role (
        user_id INTEGER,
        role_id INTEGER,
        remark TEXT
    )""",
    """CREATE TABLE country (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT
    )""",
    """CREATE TABLE image (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT,
        imageable_type TEXT,
        imageable_id INTEGER
    )""",
    """CREATE TABLE tag (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT
    )""",
    """CREATE TABLE taggable (
        tag_id INTEGER,
        taggable_type TEXT,
        taggable_id INTEGER
    )""",
]


def sqlite_config(**options):
    """Manager config with one in-memory SQLite connection."""
    return {
        "default": "sqlite",
        "connections": {
            "sqlite": {"type": "sqlite", "database": ":memory:", **options},
        },
    }


def create_schema(db):
    for ddl in SCHEMA:
        db.execute(ddl)


def seed_users(db, count=3):
    db.table("user").insert_all([
        {"name": f"user{i}", "email": f"user{i}@test.com", "status": i % 2, "score": i * 10.0}
        for i in range(1, count + 1)
    ])


class QueryCounter:
    """SQL listener counting the data statements the manager runs."""

    def __init__(self):
        self.statements = []

    def __call__(self, sql, runtime, master):
        if sql.startswith("CONNECT:") or sql.startswith("PRAGMA"):
            return
        self.statements.append(sql)

    @property
    def selects(self):
        return [sql for sql in self.statements if sql.startswith("SELECT")]

    def reset(self):
        self.statements = []


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def db():
    """A manager over a fresh in-memory database holding the test schema."""
    manager = DbManager(sqlite_config())
    create_schema(manager)
    yield manager
    manager.close()


@pytest.fixture
def counter(db):
    listener = QueryCounter()
    db.listen(listener)
    return listener


@pytest.fixture(autouse=True)
def _clear_signals():
    yield
    for signal in signals.MODEL_EVENTS.values():
        signal.clear()
