"""Shared fixtures: an in-memory record store per test."""

from datetime import date

import pytest

from tri_planner.db import AthleteLocks, Database, RecordStore
from tri_planner.seed import seed_templates

# A Wednesday; the following Monday is 2025-01-13
TODAY = date(2025, 1, 8)


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def store(db):
    return RecordStore(db)


@pytest.fixture
def seeded_store(store):
    seed_templates(store)
    return store


@pytest.fixture
def locks():
    return AthleteLocks()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def file_db(tmp_path):
    """File-backed SQLite, so worker threads each get their own connection."""
    database = Database(f"sqlite:///{tmp_path / 'planner.db'}")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def file_store(file_db):
    return RecordStore(file_db)
