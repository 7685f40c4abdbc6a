"""Typed failures raised by the contest core."""

from __future__ import annotations


class ContestError(Exception):
    """Base class for client-correctable failures."""


class ValidationError(ContestError):
    """Malformed input: bad counts, out-of-range scores, empty names."""


class NoActiveSessionError(ContestError):
    """The operation needs a live session and there is none."""


class SessionMismatchError(ContestError):
    """The session code presented does not match the live session."""


class NotFoundError(ContestError):
    """A contestant or user id is unknown to the current session."""


class UnknownUserError(ContestError):
    """A vote or lookup names a user that never joined this session."""


class PersistenceWarning(UserWarning):
    """
    The snapshot write failed after an in-memory change was applied.

    Never raised by the manager; it is attached to the operation's result
    so the caller can surface the divergence.
    """
