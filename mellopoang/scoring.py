"""
Scoring aggregator.

Pure functions over a SessionRecord snapshot; nothing here mutates the
record or touches storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from io import StringIO
from typing import Dict, List, Optional

import pandas as pd

from .models import CATEGORY_IDS, SessionRecord

GLOBAL_TOP = 10
USER_TOP = 3

VOTE_COLUMNS = ["user_id", "contestant_id", "category_id", "score"]


@dataclass(frozen=True)
class ContestantStanding:
    rank: int
    id: int
    name: str
    category_averages: Dict[str, float]
    overall_score: float


@dataclass(frozen=True)
class RankedEntry:
    contestant_id: int
    name: str
    score: float


@dataclass(frozen=True)
class UserTopThree:
    user_name: str
    top_three: List[RankedEntry]


@dataclass(frozen=True)
class AggregateResult:
    top_contestants: List[ContestantStanding]
    user_top_three: Dict[str, UserTopThree] = field(default_factory=dict)
    total_voters: int = 0
    results_revealed: bool = False


# -----------------------
# Frames
# -----------------------
def votes_dataframe(record: SessionRecord) -> pd.DataFrame:
    """
    Long-format votes: one row per (user, contestant, category) score.

    Orphaned entries (unknown user, removed contestant, unknown category)
    are left in the record but dropped here.
    """
    known = set(record.contestant_ids())
    rows = []
    for user_id, ballot in record.votes.items():
        if user_id not in record.users:
            continue
        for contestant_id, scores in ballot.items():
            if contestant_id not in known:
                continue
            for category_id, score in scores.items():
                if category_id in CATEGORY_IDS:
                    rows.append((user_id, contestant_id, category_id, float(score)))
    return pd.DataFrame(rows, columns=VOTE_COLUMNS)


def category_averages(votes: pd.DataFrame, contestant_ids: List[int]) -> pd.DataFrame:
    """
    rows = contestant_id
    cols = category_id
    values = mean score, 0 where nobody has voted
    """
    columns = list(CATEGORY_IDS)
    index = pd.Index(contestant_ids, name="contestant_id")
    if votes.empty:
        return pd.DataFrame(0.0, index=index, columns=columns)

    means = votes.groupby(["contestant_id", "category_id"])["score"].mean().unstack("category_id")
    return means.reindex(index=index, columns=columns).fillna(0.0)


def exact_overall(votes: pd.DataFrame, contestant_ids: List[int]) -> Dict[int, Fraction]:
    """
    Overall score of each contestant as an exact fraction.

    Float sums of the category averages depend on addition order, so two
    contestants with the same averages in different categories could land
    an ulp apart; ranking compares these instead.
    """
    overall = {cid: Fraction(0) for cid in contestant_ids}
    if votes.empty:
        return overall

    totals = votes.groupby(["contestant_id", "category_id"])["score"].agg(["sum", "count"])
    for (contestant_id, _category_id), row in totals.iterrows():
        if contestant_id in overall:
            overall[contestant_id] += Fraction(int(row["sum"]), int(row["count"]))
    return {cid: total / len(CATEGORY_IDS) for cid, total in overall.items()}


def ranking_table(record: SessionRecord, votes: pd.DataFrame, limit: Optional[int] = GLOBAL_TOP) -> pd.DataFrame:
    """
    Global ranking.

    Overall is the plain mean of the three category averages, so a category
    nobody scored pulls the contestant down instead of being skipped.
    Sort: higher overall wins; tie-breaker: lower contestant id.
    """
    contestant_ids = record.contestant_ids()
    averages = category_averages(votes, contestant_ids)
    exact = exact_overall(votes, contestant_ids)

    table = averages.reset_index().rename(columns={"contestant_id": "id"})
    table.insert(1, "name", [c.name for c in record.contestants])
    table["overall"] = [float(exact[cid]) for cid in contestant_ids]

    order = sorted(range(len(contestant_ids)), key=lambda i: (-exact[contestant_ids[i]], contestant_ids[i]))
    table = table.iloc[order].reset_index(drop=True)
    if limit is not None:
        table = table.head(limit)

    table.insert(0, "rank", range(1, len(table) + 1))
    return table


def user_rankings(record: SessionRecord, votes: pd.DataFrame, limit: int = USER_TOP) -> Dict[str, UserTopThree]:
    """
    Each voter's personal favourites.

    Unlike the global score, a user's score for a contestant averages only
    the categories that user actually scored.
    """
    if votes.empty:
        return {}

    per_user = votes.groupby(["user_id", "contestant_id"], sort=False)["score"].mean().reset_index()
    names = {c.id: c.name for c in record.contestants}

    result: Dict[str, UserTopThree] = {}
    for user_id, user in record.users.items():
        rows = per_user[per_user["user_id"] == user_id]
        if rows.empty:
            continue
        top = rows.sort_values(
            by=["score", "contestant_id"],
            ascending=[False, True],
            kind="mergesort",
        ).head(limit)
        result[user_id] = UserTopThree(
            user_name=user.name,
            top_three=[
                RankedEntry(
                    contestant_id=int(r.contestant_id),
                    name=names[int(r.contestant_id)],
                    score=float(r.score),
                )
                for r in top.itertuples(index=False)
            ],
        )
    return result


# -----------------------
# Results
# -----------------------
def compute_results(record: SessionRecord, user_id: Optional[str] = None) -> AggregateResult:
    """
    Aggregate the whole record.

    With user_id, the per-user section holds only that user's entry (empty
    if they have not voted); the global ranking is always included and the
    caller decides whether the reveal gate lets it be shown.
    """
    votes = votes_dataframe(record)
    table = ranking_table(record, votes)

    standings = [
        ContestantStanding(
            rank=int(row["rank"]),
            id=int(row["id"]),
            name=str(row["name"]),
            category_averages={cat: float(row[cat]) for cat in CATEGORY_IDS},
            overall_score=float(row["overall"]),
        )
        for _, row in table.iterrows()
    ]

    tops = user_rankings(record, votes)
    if user_id is not None:
        tops = {uid: entry for uid, entry in tops.items() if uid == user_id}

    return AggregateResult(
        top_contestants=standings,
        user_top_three=tops,
        total_voters=int(votes["user_id"].nunique()),
        results_revealed=record.results_revealed,
    )


def results_csv(record: SessionRecord) -> str:
    """Full ranking (every contestant) as CSV."""
    table = ranking_table(record, votes_dataframe(record), limit=None)
    out = table.rename(
        columns={
            "rank": "Rank",
            "id": "ContestantId",
            "name": "Name",
            "overall": "OverallScore",
            **{cat: cat.capitalize() for cat in CATEGORY_IDS},
        }
    )
    buf = StringIO()
    out.to_csv(buf, index=False)
    return buf.getvalue()
