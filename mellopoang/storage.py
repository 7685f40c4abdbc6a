"""
Durable snapshot of the session record.

Each snapshot is built in a temp file and swapped over the target, so a
snapshot either lands completely or not at all.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import closing, contextmanager
from typing import Iterator, Optional

from .models import CATEGORIES, Category, Contestant, SessionRecord, User

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS session (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    session_id TEXT,
    results_revealed INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS categories (
    position INTEGER NOT NULL,
    id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS contestants (
    position INTEGER NOT NULL,
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    position INTEGER NOT NULL,
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL
);

-- no foreign keys: orphaned votes are kept
CREATE TABLE IF NOT EXISTS votes (
    user_id TEXT NOT NULL,
    contestant_id INTEGER NOT NULL,
    category_id TEXT NOT NULL,
    score INTEGER NOT NULL,
    PRIMARY KEY (user_id, contestant_id, category_id)
);
"""


class SnapshotStore:
    """Snapshot/restore/purge of a SessionRecord in a sqlite file."""

    def __init__(self, path: str) -> None:
        self.path = path

    @contextmanager
    def db(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self.path)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    def snapshot(self, record: SessionRecord) -> None:
        """
        Replace the stored snapshot. Raises sqlite3.Error/OSError on failure.

        The record is written to a sibling temp file which then replaces the
        target, so a torn or corrupt target never blocks the next write.
        """
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp = self.path + ".tmp"
        for path in (tmp, tmp + "-journal"):
            if os.path.exists(path):
                os.remove(path)

        with closing(sqlite3.connect(tmp)) as conn:
            with conn:
                conn.executescript(SCHEMA)
                conn.execute(
                    "INSERT INTO session(id, session_id, results_revealed) VALUES(1,?,?)",
                    (record.session_id, int(record.results_revealed)),
                )
                conn.executemany(
                    "INSERT INTO categories(position, id, display_name) VALUES(?,?,?)",
                    [(pos, c.id, c.display_name) for pos, c in enumerate(record.categories)],
                )
                conn.executemany(
                    "INSERT INTO contestants(position, id, name) VALUES(?,?,?)",
                    [(pos, c.id, c.name) for pos, c in enumerate(record.contestants)],
                )
                conn.executemany(
                    "INSERT INTO users(position, id, name) VALUES(?,?,?)",
                    [(pos, u.id, u.name) for pos, u in enumerate(record.users.values())],
                )
                conn.executemany(
                    "INSERT INTO votes(user_id, contestant_id, category_id, score) VALUES(?,?,?,?)",
                    [
                        (user_id, contestant_id, category_id, score)
                        for user_id, ballot in record.votes.items()
                        for contestant_id, scores in ballot.items()
                        for category_id, score in scores.items()
                    ],
                )
        # a leftover journal would be replayed onto the new file
        if os.path.exists(self.path + "-journal"):
            os.remove(self.path + "-journal")
        os.replace(tmp, self.path)

    def restore(self) -> Optional[SessionRecord]:
        """
        Load the stored record, or None when there is nothing usable.

        A missing, torn or unreadable file means "no session"; it is logged
        and never propagated.
        """
        if not os.path.exists(self.path):
            return None

        try:
            with self.db() as conn:
                head = conn.execute("SELECT session_id, results_revealed FROM session WHERE id=1").fetchone()
                if head is None:
                    return None
                categories = conn.execute("SELECT id, display_name FROM categories ORDER BY position").fetchall()
                contestants = conn.execute("SELECT id, name FROM contestants ORDER BY position").fetchall()
                users = conn.execute("SELECT id, name FROM users ORDER BY position").fetchall()
                votes = conn.execute("SELECT user_id, contestant_id, category_id, score FROM votes").fetchall()
        except sqlite3.DatabaseError:
            logger.warning("Ignoring unreadable snapshot at %s", self.path, exc_info=True)
            return None

        record = SessionRecord(
            session_id=head["session_id"],
            categories=tuple(Category(r["id"], r["display_name"]) for r in categories) or CATEGORIES,
            contestants=[Contestant(id=int(r["id"]), name=r["name"]) for r in contestants],
            users={r["id"]: User(id=r["id"], name=r["name"]) for r in users},
            results_revealed=bool(head["results_revealed"]),
        )
        # every joined user has a bucket, even before their first vote
        record.votes = {user_id: {} for user_id in record.users}
        for r in votes:
            bucket = record.votes.setdefault(r["user_id"], {})
            bucket.setdefault(int(r["contestant_id"]), {})[r["category_id"]] = int(r["score"])
        return record

    def purge(self) -> None:
        """Remove the snapshot file and any leftover journal or temp file."""
        for path in (self.path, self.path + "-journal", self.path + ".tmp", self.path + ".tmp-journal"):
            if os.path.exists(path):
                os.remove(path)
