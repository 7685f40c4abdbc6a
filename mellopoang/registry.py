"""Contestant and user registries scoped to the current session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import (
    NoActiveSessionError,
    NotFoundError,
    SessionMismatchError,
    ValidationError,
)
from .models import Ballot, Category, Contestant, SessionRecord, User
from .votes import votes_for_user


# -----------------------
# Contestants
# -----------------------
def clean_name(name: Optional[str]) -> str:
    cleaned = str(name if name is not None else "").strip()
    if not cleaned:
        raise ValidationError("Contestant name cannot be empty.")
    return cleaned


def build_roster(count: int, names: Optional[Sequence[str]] = None) -> List[Contestant]:
    """
    Roster for a fresh session with ids 1..count.

    Names are used only when exactly one is given per contestant; anything
    else falls back to "Contestant N". A blank name in a used list is
    rejected.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValidationError("Number of contestants must be a positive integer.")

    if names is not None and len(names) == count:
        return [Contestant(id=idx, name=clean_name(name)) for idx, name in enumerate(names, start=1)]
    return [Contestant(id=idx, name=f"Contestant {idx}") for idx in range(1, count + 1)]


def add_contestants(record: SessionRecord, names: Sequence[str]) -> List[Contestant]:
    """Append contestants in input order; ids continue from the current max."""
    if not names:
        raise ValidationError("At least one contestant name is required.")
    cleaned = [clean_name(name) for name in names]

    max_id = max(record.contestant_ids(), default=0)
    for offset, name in enumerate(cleaned, start=1):
        record.contestants.append(Contestant(id=max_id + offset, name=name))
    return list(record.contestants)


def rename_contestant(record: SessionRecord, contestant_id: int, new_name: str) -> Contestant:
    # votes are keyed by id, so a rename never touches them
    name = clean_name(new_name)

    contestant = record.find_contestant(contestant_id)
    if contestant is None:
        raise NotFoundError(f"Contestant {contestant_id} not found.")
    contestant.name = name
    return contestant


# -----------------------
# Users
# -----------------------
def _matches(record: SessionRecord, session_id: Optional[str]) -> bool:
    if record.session_id is None or session_id is None:
        return False
    return str(session_id).strip().upper() == record.session_id.upper()


def join(
    record: SessionRecord,
    session_id: str,
    user_name: str,
    new_user_id: Callable[[], str],
) -> User:
    if not record.is_active:
        raise NoActiveSessionError("No session has been started.")
    if not _matches(record, session_id):
        raise SessionMismatchError("Invalid session code.")

    name = (user_name or "").strip()
    if not name:
        raise ValidationError("Name cannot be empty.")

    user_id = new_user_id()
    while user_id in record.users:
        user_id = new_user_id()

    user = User(id=user_id, name=name)
    record.users[user_id] = user
    record.votes[user_id] = {}
    return user


@dataclass(frozen=True)
class Reconnection:
    user_name: str
    contestants: List[Contestant]
    categories: Tuple[Category, ...]
    votes: Ballot


def reconnect(record: SessionRecord, user_id: str, session_id: str) -> Reconnection:
    """
    Resume a participant after a client refresh.

    A user id never survives a restart or retire, so a stale client ends up
    here with a mismatch or not-found and has to join again.
    """
    if not _matches(record, session_id):
        raise SessionMismatchError("Invalid session code.")

    user = record.users.get(user_id)
    if user is None:
        raise NotFoundError("User not found.")

    return Reconnection(
        user_name=user.name,
        contestants=[Contestant(c.id, c.name) for c in record.contestants],
        categories=record.categories,
        votes=votes_for_user(record, user_id),
    )
