"""Sparse vote matrix: user -> contestant -> category -> score."""

from __future__ import annotations

from .errors import NotFoundError, ValidationError
from .models import CATEGORY_IDS, MAX_SCORE, MIN_SCORE, Ballot, SessionRecord


def validate_score(score: object) -> int:
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationError("Score must be a whole number.")
    if score < MIN_SCORE or score > MAX_SCORE:
        raise ValidationError(f"Score out of range ({MIN_SCORE}-{MAX_SCORE}): {score}.")
    return score


def upsert_vote(
    record: SessionRecord,
    user_id: str,
    contestant_id: int,
    category_id: str,
    score: int,
) -> None:
    """
    Store a score, replacing any earlier one for the same key.

    Voting again for the same contestant and category revises the score;
    it never adds to it.
    """
    value = validate_score(score)
    if category_id not in CATEGORY_IDS:
        raise ValidationError(f"Unknown category: {category_id}.")
    if record.find_contestant(contestant_id) is None:
        raise NotFoundError(f"Contestant {contestant_id} not found.")

    bucket = record.votes.setdefault(user_id, {})
    bucket.setdefault(contestant_id, {})[category_id] = value


def votes_for_user(record: SessionRecord, user_id: str) -> Ballot:
    """Copy of one user's votes; empty when they have not voted."""
    bucket = record.votes.get(user_id, {})
    return {cid: dict(scores) for cid, scores in bucket.items()}
