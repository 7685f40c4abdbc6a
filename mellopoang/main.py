from __future__ import annotations

import functools
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from .app_logging import configure_logging
from .config import Settings
from .errors import (
    ContestError,
    NoActiveSessionError,
    NotFoundError,
    PersistenceWarning,
    SessionMismatchError,
    UnknownUserError,
    ValidationError,
)
from .manager import SessionManager, new_session_code
from .models import Ballot, Category, Contestant
from .scoring import AggregateResult
from .storage import SnapshotStore

ERROR_STATUS = {
    ValidationError: 400,
    NoActiveSessionError: 400,
    SessionMismatchError: 400,
    NotFoundError: 404,
    UnknownUserError: 404,
}


# -----------------------
# Request bodies
# -----------------------
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class InitRequest(CamelModel):
    num_contestants: int = Field(alias="numContestants")
    contestant_names: Optional[List[str]] = Field(default=None, alias="contestantNames")


class AddContestantsRequest(CamelModel):
    contestants: List[str]


class UpdateContestantRequest(CamelModel):
    contestant_id: int = Field(alias="contestantId")
    name: str


class JoinRequest(CamelModel):
    session_id: str = Field(alias="sessionId")
    user_name: str = Field(alias="userName")


class ReconnectRequest(CamelModel):
    user_id: str = Field(alias="userId")
    session_id: str = Field(alias="sessionId")


class VoteRequest(CamelModel):
    user_id: str = Field(alias="userId")
    contestant_id: int = Field(alias="contestantId")
    category_id: str = Field(alias="categoryId")
    score: int


# -----------------------
# Response helpers
# -----------------------
def contestant_json(c: Contestant) -> Dict[str, Any]:
    return {"id": c.id, "name": c.name}


def category_json(c: Category) -> Dict[str, Any]:
    return {"id": c.id, "name": c.display_name}


def ballot_json(ballot: Ballot) -> Dict[str, Dict[str, int]]:
    return {str(cid): dict(scores) for cid, scores in ballot.items()}


def with_warning(payload: Dict[str, Any], warning: Optional[PersistenceWarning]) -> Dict[str, Any]:
    if warning is not None:
        payload["persistenceWarning"] = str(warning)
    return payload


def results_json(result: AggregateResult, include_global: bool = True) -> Dict[str, Any]:
    top = result.top_contestants if include_global else []
    return {
        "topContestants": [
            {
                "rank": s.rank,
                "id": s.id,
                "name": s.name,
                "categoryAverages": s.category_averages,
                "overallScore": s.overall_score,
            }
            for s in top
        ],
        "userTopThree": {
            user_id: {
                "userName": entry.user_name,
                "topThree": [
                    {"contestantId": e.contestant_id, "name": e.name, "score": e.score}
                    for e in entry.top_three
                ],
            }
            for user_id, entry in result.user_top_three.items()
        },
        "totalVoters": result.total_voters,
        "resultsRevealed": result.results_revealed,
    }


# -----------------------
# App
# -----------------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    manager = SessionManager(
        store=SnapshotStore(settings.snapshot_path),
        session_code=functools.partial(new_session_code, settings.session_code_length),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        manager.restore()
        yield
        if settings.purge_on_shutdown:
            manager.purge()

    app = FastAPI(lifespan=lifespan)
    app.state.manager = manager

    @app.exception_handler(ContestError)
    async def contest_error(request: Request, exc: ContestError) -> JSONResponse:
        status = ERROR_STATUS.get(type(exc), 400)
        logger.info("%s %s -> %d: %s", request.method, request.url.path, status, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    # -----------------------
    # Routes: Admin
    # -----------------------
    @app.post("/api/admin/init")
    def admin_init(body: InitRequest):
        started = manager.initialize_session(body.num_contestants, body.contestant_names)
        return with_warning(
            {
                "sessionId": started.session_id,
                "contestants": [contestant_json(c) for c in started.contestants],
            },
            started.persistence_warning,
        )

    @app.get("/api/admin/status")
    def admin_status():
        status = manager.get_status()
        return {
            "sessionId": status.session_id,
            "numContestants": status.num_contestants,
            "contestants": [contestant_json(c) for c in status.contestants],
            "activeUsers": status.user_count,
            "users": status.user_names,
            "resultsRevealed": status.results_revealed,
        }

    @app.post("/api/admin/add-contestants")
    def admin_add_contestants(body: AddContestantsRequest):
        updated = manager.add_contestants(body.contestants)
        return with_warning(
            {
                "contestants": [contestant_json(c) for c in updated.contestants],
                "numContestants": len(updated.contestants),
            },
            updated.persistence_warning,
        )

    @app.post("/api/admin/update-contestant")
    def admin_update_contestant(body: UpdateContestantRequest):
        renamed = manager.rename_contestant(body.contestant_id, body.name)
        return with_warning(
            {"success": True, "contestant": contestant_json(renamed.contestant)},
            renamed.persistence_warning,
        )

    @app.post("/api/admin/reset-session")
    def admin_reset_session():
        ack = manager.restart_session()
        return with_warning({"success": True}, ack.persistence_warning)

    @app.post("/api/admin/start-new-session")
    def admin_start_new_session():
        ack = manager.retire_session()
        return with_warning({"success": True}, ack.persistence_warning)

    @app.post("/api/admin/reveal-results")
    def admin_reveal_results():
        ack = manager.reveal_results()
        return with_warning({"success": True, "resultsRevealed": True}, ack.persistence_warning)

    @app.get("/api/admin/results")
    def admin_results():
        return results_json(manager.compute_results())

    @app.get("/api/admin/results.csv")
    def admin_results_csv():
        return Response(
            content=manager.results_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="results.csv"'},
        )

    # -----------------------
    # Routes: Participants
    # -----------------------
    @app.post("/api/user/join")
    def user_join(body: JoinRequest):
        joined = manager.join(body.session_id, body.user_name)
        return with_warning(
            {
                "userId": joined.user_id,
                "contestants": [contestant_json(c) for c in joined.contestants],
                "categories": [category_json(c) for c in joined.categories],
            },
            joined.persistence_warning,
        )

    @app.post("/api/user/reconnect")
    def user_reconnect(body: ReconnectRequest):
        resumed = manager.reconnect(body.user_id, body.session_id)
        return {
            "userId": body.user_id,
            "userName": resumed.user_name,
            "contestants": [contestant_json(c) for c in resumed.contestants],
            "categories": [category_json(c) for c in resumed.categories],
            "votes": ballot_json(resumed.votes),
        }

    @app.get("/api/user/contestants/{user_id}")
    def user_contestants(user_id: str):
        sheet = manager.get_ballot(user_id)
        return {
            "contestants": [contestant_json(c) for c in sheet.contestants],
            "categories": [category_json(c) for c in sheet.categories],
        }

    @app.get("/api/user/votes/{user_id}")
    def user_votes(user_id: str):
        return ballot_json(manager.get_votes(user_id))

    @app.post("/api/user/vote")
    def user_vote(body: VoteRequest):
        ack = manager.record_vote(body.user_id, body.contestant_id, body.category_id, body.score)
        return with_warning({"success": True}, ack.persistence_warning)

    # -----------------------
    # Routes: Results
    # -----------------------
    @app.get("/api/results")
    def results(user_id: Optional[str] = Query(default=None, alias="userId")):
        """Participant view: the shared ranking stays hidden until it is revealed."""
        result = manager.compute_results(user_id)
        return results_json(result, include_global=result.results_revealed)

    @app.get("/api/results-revealed")
    def results_revealed():
        return {"resultsRevealed": manager.is_revealed()}

    return app


app = create_app()
