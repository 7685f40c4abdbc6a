"""
Session manager: the single owner and writer of the session record.

Every mutation runs under one lock and snapshots before the lock is
released. Reads copy the record under the lock and work on the copy.
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from . import registry, scoring, votes
from .errors import (
    NoActiveSessionError,
    NotFoundError,
    PersistenceWarning,
    SessionMismatchError,
    UnknownUserError,
)
from .models import Ballot, Category, Contestant, SessionRecord
from .storage import SnapshotStore

logger = logging.getLogger(__name__)


def new_session_code(length: int = 8) -> str:
    code = ""
    while len(code) < length:
        code += secrets.token_urlsafe(length).replace("-", "").replace("_", "")
    return code[:length].upper()


def new_user_id() -> str:
    return str(uuid.uuid4())


# -----------------------
# Results of operations
# -----------------------
@dataclass(frozen=True)
class Ack:
    persistence_warning: Optional[PersistenceWarning] = None


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    contestants: List[Contestant]
    persistence_warning: Optional[PersistenceWarning] = None


@dataclass(frozen=True)
class RosterUpdated:
    contestants: List[Contestant]
    persistence_warning: Optional[PersistenceWarning] = None


@dataclass(frozen=True)
class ContestantRenamed:
    contestant: Contestant
    persistence_warning: Optional[PersistenceWarning] = None


@dataclass(frozen=True)
class Joined:
    user_id: str
    contestants: List[Contestant]
    categories: Tuple[Category, ...]
    persistence_warning: Optional[PersistenceWarning] = None


@dataclass(frozen=True)
class Status:
    session_id: Optional[str]
    contestants: List[Contestant]
    user_count: int
    user_names: List[str]
    results_revealed: bool

    @property
    def num_contestants(self) -> int:
        return len(self.contestants)


@dataclass(frozen=True)
class BallotSheet:
    contestants: List[Contestant]
    categories: Tuple[Category, ...]


class SessionManager:
    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        session_code: Callable[[], str] = new_session_code,
        user_id: Callable[[], str] = new_user_id,
    ) -> None:
        self.store = store
        self._session_code = session_code
        self._user_id = user_id
        self._lock = threading.RLock()
        self._record = SessionRecord()

    # -----------------------
    # Persistence
    # -----------------------
    def restore(self) -> bool:
        """Load the last snapshot if there is one; otherwise start empty."""
        restored = self.store.restore() if self.store is not None else None
        with self._lock:
            self._record = restored or SessionRecord()
        if restored is not None and restored.is_active:
            logger.info(
                "Restored session %s (%d contestants, %d users)",
                restored.session_id,
                len(restored.contestants),
                len(restored.users),
            )
        return restored is not None

    def purge(self) -> None:
        if self.store is None:
            return
        with self._lock:
            self.store.purge()
        logger.info("Session snapshot removed")

    def _commit(self) -> Optional[PersistenceWarning]:
        # caller holds the lock
        if self.store is None:
            return None
        try:
            self.store.snapshot(self._record)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("Snapshot failed; in-memory state kept", exc_info=True)
            return PersistenceWarning(f"Session state could not be saved: {exc}")
        return None

    def _read(self) -> SessionRecord:
        with self._lock:
            return self._record.copy()

    # -----------------------
    # Lifecycle
    # -----------------------
    def initialize_session(self, contestant_count: int, names: Optional[Sequence[str]] = None) -> SessionStarted:
        roster = registry.build_roster(contestant_count, names)
        with self._lock:
            code = self._session_code()
            while code == self._record.session_id:
                code = self._session_code()

            self._record.session_id = code
            self._record.contestants = roster
            self._record.clear_voting()
            warning = self._commit()
            contestants = [Contestant(c.id, c.name) for c in roster]

        logger.info("Session %s started with %d contestants", code, len(contestants))
        return SessionStarted(session_id=code, contestants=contestants, persistence_warning=warning)

    def restart_session(self) -> Ack:
        with self._lock:
            if not self._record.is_active:
                raise NoActiveSessionError("No session has been started.")
            self._record.clear_voting()
            warning = self._commit()
            code = self._record.session_id
        logger.info("Session %s restarted; votes and users cleared", code)
        return Ack(persistence_warning=warning)

    def retire_session(self) -> Ack:
        with self._lock:
            self._record.clear_all()
            warning = self._commit()
        logger.info("Session retired; ready for setup")
        return Ack(persistence_warning=warning)

    def get_status(self) -> Status:
        record = self._read()
        return Status(
            session_id=record.session_id,
            contestants=record.contestants,
            user_count=len(record.users),
            user_names=[u.name for u in record.users.values()],
            results_revealed=record.results_revealed,
        )

    # -----------------------
    # Contestants
    # -----------------------
    def add_contestants(self, names: Sequence[str]) -> RosterUpdated:
        with self._lock:
            if not self._record.is_active:
                raise NoActiveSessionError("No session has been started.")
            registry.add_contestants(self._record, names)
            warning = self._commit()
            contestants = [Contestant(c.id, c.name) for c in self._record.contestants]
        return RosterUpdated(contestants=contestants, persistence_warning=warning)

    def rename_contestant(self, contestant_id: int, new_name: str) -> ContestantRenamed:
        with self._lock:
            contestant = registry.rename_contestant(self._record, contestant_id, new_name)
            warning = self._commit()
            renamed = Contestant(contestant.id, contestant.name)
        return ContestantRenamed(contestant=renamed, persistence_warning=warning)

    # -----------------------
    # Users
    # -----------------------
    def join(self, session_id: str, user_name: str) -> Joined:
        with self._lock:
            try:
                user = registry.join(self._record, session_id, user_name, self._user_id)
            except (NoActiveSessionError, SessionMismatchError):
                logger.info("Join rejected for session code %r", session_id)
                raise
            warning = self._commit()
            contestants = [Contestant(c.id, c.name) for c in self._record.contestants]
            categories = self._record.categories

        logger.info("User %s joined session %s", user.name, session_id)
        return Joined(
            user_id=user.id,
            contestants=contestants,
            categories=categories,
            persistence_warning=warning,
        )

    def reconnect(self, user_id: str, session_id: str) -> registry.Reconnection:
        return registry.reconnect(self._read(), user_id, session_id)

    def get_ballot(self, user_id: str) -> BallotSheet:
        record = self._read()
        if user_id not in record.users:
            raise NotFoundError("User not found.")
        return BallotSheet(contestants=record.contestants, categories=record.categories)

    def get_votes(self, user_id: str) -> Ballot:
        record = self._read()
        if user_id not in record.users:
            raise NotFoundError("User not found.")
        return votes.votes_for_user(record, user_id)

    # -----------------------
    # Voting and results
    # -----------------------
    def record_vote(self, user_id: str, contestant_id: int, category_id: str, score: int) -> Ack:
        with self._lock:
            if user_id not in self._record.users:
                raise UnknownUserError("User not found.")
            votes.upsert_vote(self._record, user_id, contestant_id, category_id, score)
            warning = self._commit()
        return Ack(persistence_warning=warning)

    def reveal_results(self) -> Ack:
        with self._lock:
            if self._record.results_revealed:
                return Ack()
            self._record.results_revealed = True
            warning = self._commit()
        logger.info("Results revealed")
        return Ack(persistence_warning=warning)

    def is_revealed(self) -> bool:
        with self._lock:
            return self._record.results_revealed

    def compute_results(self, user_id: Optional[str] = None) -> scoring.AggregateResult:
        record = self._read()
        if user_id is not None and user_id not in record.users:
            raise UnknownUserError("User not found.")
        return scoring.compute_results(record, user_id)

    def results_csv(self) -> str:
        return scoring.results_csv(self._read())
