"""Session record: the single source of truth for one contest generation."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

MIN_SCORE = 1
MAX_SCORE = 10

# contestant_id -> category_id -> score
Ballot = Dict[int, Dict[str, int]]


@dataclass(frozen=True)
class Category:
    id: str
    display_name: str


CATEGORIES: Tuple[Category, ...] = (
    Category("clothing", "Clothing"),
    Category("performance", "Performance"),
    Category("song", "Song"),
)
CATEGORY_IDS: Tuple[str, ...] = tuple(c.id for c in CATEGORIES)


@dataclass
class Contestant:
    id: int
    name: str


@dataclass
class User:
    id: str
    name: str


@dataclass
class SessionRecord:
    """
    One generation of the contest.

    votes is sparse: a missing user, contestant or category level means
    "not voted yet", never a score of zero.
    """

    session_id: Optional[str] = None
    categories: Tuple[Category, ...] = CATEGORIES
    contestants: List[Contestant] = field(default_factory=list)
    users: Dict[str, User] = field(default_factory=dict)
    votes: Dict[str, Ballot] = field(default_factory=dict)
    results_revealed: bool = False

    @property
    def is_active(self) -> bool:
        return self.session_id is not None

    def contestant_ids(self) -> List[int]:
        return [c.id for c in self.contestants]

    def find_contestant(self, contestant_id: int) -> Optional[Contestant]:
        for c in self.contestants:
            if c.id == contestant_id:
                return c
        return None

    def clear_voting(self) -> None:
        """Soft reset: drop users, votes and the reveal flag."""
        self.users = {}
        self.votes = {}
        self.results_revealed = False

    def clear_all(self) -> None:
        """Hard reset back to "no active session"."""
        self.clear_voting()
        self.session_id = None
        self.contestants = []

    def copy(self) -> "SessionRecord":
        return copy.deepcopy(self)
