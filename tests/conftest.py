"""Shared test fixtures."""

import itertools

import pytest

from mellopoang.config import Settings
from mellopoang.manager import SessionManager
from mellopoang.models import Contestant, SessionRecord, User
from mellopoang.storage import SnapshotStore


class FailingStore(SnapshotStore):
    """Store whose writes always fail."""

    def __init__(self) -> None:
        super().__init__(path="unused.sqlite")
        self.attempts = 0

    def snapshot(self, record: SessionRecord) -> None:
        self.attempts += 1
        raise OSError("disk full")


def sequential_ids(prefix: str):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@pytest.fixture
def manager() -> SessionManager:
    return SessionManager(
        session_code=sequential_ids("CODE"),
        user_id=sequential_ids("user-"),
    )


@pytest.fixture
def snapshot_path(tmp_path) -> str:
    return str(tmp_path / "session.sqlite")


@pytest.fixture
def stored_manager(snapshot_path: str) -> SessionManager:
    return SessionManager(
        store=SnapshotStore(snapshot_path),
        session_code=sequential_ids("CODE"),
        user_id=sequential_ids("user-"),
    )


@pytest.fixture
def settings(snapshot_path: str) -> Settings:
    return Settings(snapshot_path=snapshot_path)


@pytest.fixture
def record() -> SessionRecord:
    """Active session with three contestants and two joined users."""
    return SessionRecord(
        session_id="ABC123",
        contestants=[Contestant(1, "Alpha"), Contestant(2, "Bravo"), Contestant(3, "Charlie")],
        users={"u1": User("u1", "Ann"), "u2": User("u2", "Ben")},
        votes={"u1": {}, "u2": {}},
    )
