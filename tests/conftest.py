"""Shared test fixtures for circlecal tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- A seeded SQLite store with a small friend graph
- A fixed test day

Usage:
    def test_something(store, day):
        store.add_event("alice", day(9), day(10))
        ...
"""

import os
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from pathlib import Path

import pytest

from circlecal.policies.models import DetailLevel, FriendshipStatus
from circlecal.store.sqlite_store import SqliteCalendarStore


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


@pytest.fixture
def store(temp_db: Path) -> SqliteCalendarStore:
    """Empty store with users alice, bob, carol, dave and eve."""
    store = SqliteCalendarStore(temp_db)
    for user_id in ("alice", "bob", "carol", "dave", "eve"):
        store.add_user(user_id, name=user_id.capitalize(), email=f"{user_id}@example.com")
    return store


@pytest.fixture
def friend_graph(store: SqliteCalendarStore) -> SqliteCalendarStore:
    """Store seeded with a typical friend graph around alice.

    - alice -> bob: ACCEPTED, sharing on, no override
    - carol -> alice: ACCEPTED, sharing on, carol granted DETAILS
    - alice -> dave: PENDING
    - eve -> alice: BLOCKED
    """
    store.add_friendship("alice", "bob", status=FriendshipStatus.ACCEPTED)
    store.add_friendship(
        "carol", "alice", status=FriendshipStatus.ACCEPTED, detail_level=DetailLevel.DETAILS
    )
    store.add_friendship("alice", "dave", status=FriendshipStatus.PENDING)
    store.add_friendship("eve", "alice", status=FriendshipStatus.BLOCKED)
    return store


# ─────────────────────────────────────────────────────────────────────────────
# Time Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def day() -> Callable[..., datetime]:
    """Build UTC datetimes on a fixed Monday: day(9, 30) -> 2026-03-02 09:30Z."""

    def _at(hour: int, minute: int = 0) -> datetime:
        return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)

    return _at
