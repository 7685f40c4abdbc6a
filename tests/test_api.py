"""Tests for the HTTP request layer."""

import pytest
from fastapi.testclient import TestClient

from mellopoang.config import Settings
from mellopoang.main import create_app


@pytest.fixture
def client(settings: Settings):
    with TestClient(create_app(settings)) as client:
        yield client


def start(client: TestClient, count: int = 3, names=None) -> str:
    response = client.post("/api/admin/init", json={"numContestants": count, "contestantNames": names})
    assert response.status_code == 200
    return response.json()["sessionId"]


def join(client: TestClient, session_id: str, name: str = "Ann") -> str:
    response = client.post("/api/user/join", json={"sessionId": session_id, "userName": name})
    assert response.status_code == 200
    return response.json()["userId"]


def vote(client: TestClient, user_id: str, contestant_id: int, category_id: str, score: int):
    return client.post(
        "/api/user/vote",
        json={"userId": user_id, "contestantId": contestant_id, "categoryId": category_id, "score": score},
    )


def test_init_and_status(client: TestClient) -> None:
    session_id = start(client, 2, ["Loreen", "Tusse"])

    data = client.get("/api/admin/status").json()

    assert data["sessionId"] == session_id
    assert data["numContestants"] == 2
    assert data["contestants"] == [{"id": 1, "name": "Loreen"}, {"id": 2, "name": "Tusse"}]
    assert data["activeUsers"] == 0


def test_init_rejects_zero(client: TestClient) -> None:
    response = client.post("/api/admin/init", json={"numContestants": 0})

    assert response.status_code == 400
    assert "positive" in response.json()["detail"]


def test_join_vote_and_results(client: TestClient) -> None:
    session_id = start(client)
    ann = join(client, session_id.lower(), "Ann")
    ben = join(client, session_id, "Ben")

    assert vote(client, ann, 1, "clothing", 8).status_code == 200
    assert vote(client, ben, 1, "clothing", 6).status_code == 200
    assert vote(client, ann, 1, "song", 10).status_code == 200

    data = client.get("/api/admin/results").json()
    first = data["topContestants"][0]

    assert first["id"] == 1
    assert first["categoryAverages"] == {"clothing": 7.0, "performance": 0.0, "song": 10.0}
    assert first["overallScore"] == pytest.approx(17 / 3)
    assert data["totalVoters"] == 2
    assert data["userTopThree"][ann]["topThree"][0] == {"contestantId": 1, "name": "Contestant 1", "score": 9.0}
    assert data["resultsRevealed"] is False


def test_join_errors(client: TestClient) -> None:
    response = client.post("/api/user/join", json={"sessionId": "NOPE", "userName": "Ann"})
    assert response.status_code == 400

    start(client)
    response = client.post("/api/user/join", json={"sessionId": "NOPE", "userName": "Ann"})
    assert response.status_code == 400
    assert "session code" in response.json()["detail"]


def test_vote_errors(client: TestClient) -> None:
    session_id = start(client)
    user_id = join(client, session_id)

    assert vote(client, "stranger", 1, "song", 5).status_code == 404
    assert vote(client, user_id, 1, "song", 0).status_code == 400
    assert vote(client, user_id, 1, "dance", 5).status_code == 400
    assert vote(client, user_id, 9, "song", 5).status_code == 404


def test_reconnect_returns_votes(client: TestClient) -> None:
    session_id = start(client)
    user_id = join(client, session_id)
    vote(client, user_id, 2, "performance", 7)

    response = client.post("/api/user/reconnect", json={"userId": user_id, "sessionId": session_id})
    data = response.json()

    assert response.status_code == 200
    assert data["userName"] == "Ann"
    assert data["votes"] == {"2": {"performance": 7}}
    assert [c["id"] for c in data["categories"]] == ["clothing", "performance", "song"]
    assert client.get(f"/api/user/votes/{user_id}").json() == {"2": {"performance": 7}}


def test_reconnect_after_new_session(client: TestClient) -> None:
    session_id = start(client)
    user_id = join(client, session_id)

    client.post("/api/admin/start-new-session")
    response = client.post("/api/user/reconnect", json={"userId": user_id, "sessionId": session_id})

    assert response.status_code == 400


def test_reset_session_forces_rejoin(client: TestClient) -> None:
    session_id = start(client)
    user_id = join(client, session_id)

    assert client.post("/api/admin/reset-session").json() == {"success": True}

    response = client.post("/api/user/reconnect", json={"userId": user_id, "sessionId": session_id})
    assert response.status_code == 404
    assert client.get(f"/api/user/contestants/{user_id}").status_code == 404


def test_reset_without_session(client: TestClient) -> None:
    assert client.post("/api/admin/reset-session").status_code == 400


def test_contestant_edits(client: TestClient) -> None:
    start(client, 2)

    added = client.post("/api/admin/add-contestants", json={"contestants": ["Third", "Fourth"]}).json()
    renamed = client.post("/api/admin/update-contestant", json={"contestantId": 2, "name": "Second"})

    assert [c["id"] for c in added["contestants"]] == [1, 2, 3, 4]
    assert added["numContestants"] == 4
    assert renamed.json()["contestant"] == {"id": 2, "name": "Second"}
    missing = client.post("/api/admin/update-contestant", json={"contestantId": 42, "name": "X"})
    assert missing.status_code == 404
    empty = client.post("/api/admin/add-contestants", json={"contestants": []})
    assert empty.status_code == 400


def test_reveal_gate_hides_global_ranking_from_participants(client: TestClient) -> None:
    session_id = start(client)
    user_id = join(client, session_id)
    vote(client, user_id, 3, "song", 9)

    hidden = client.get("/api/results", params={"userId": user_id}).json()
    assert hidden["topContestants"] == []
    assert hidden["userTopThree"][user_id]["topThree"][0]["contestantId"] == 3
    assert client.get("/api/results-revealed").json() == {"resultsRevealed": False}

    assert client.post("/api/admin/reveal-results").json()["resultsRevealed"] is True
    assert client.post("/api/admin/reveal-results").status_code == 200

    shown = client.get("/api/results", params={"userId": user_id}).json()
    assert shown["topContestants"][0]["id"] == 3
    assert client.get("/api/results-revealed").json() == {"resultsRevealed": True}


def test_results_without_user_are_gated_too(client: TestClient) -> None:
    session_id = start(client)
    user_id = join(client, session_id)
    vote(client, user_id, 2, "clothing", 7)

    anonymous = client.get("/api/results").json()
    admin = client.get("/api/admin/results").json()

    assert anonymous["topContestants"] == []
    assert anonymous["totalVoters"] == 1
    assert admin["topContestants"][0]["id"] == 2

    client.post("/api/admin/reveal-results")
    assert client.get("/api/results").json()["topContestants"][0]["id"] == 2


def test_results_for_unknown_user(client: TestClient) -> None:
    start(client)

    assert client.get("/api/results", params={"userId": "ghost"}).status_code == 404


def test_results_csv(client: TestClient) -> None:
    session_id = start(client, 2)
    user_id = join(client, session_id)
    vote(client, user_id, 2, "song", 6)

    response = client.get("/api/admin/results.csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.splitlines()[1].startswith("1,2,Contestant 2,")


def test_state_survives_app_restart(settings: Settings) -> None:
    with TestClient(create_app(settings)) as client:
        session_id = start(client)
        user_id = join(client, session_id)
        vote(client, user_id, 1, "song", 4)

    with TestClient(create_app(settings)) as client:
        status = client.get("/api/admin/status").json()
        votes = client.get(f"/api/user/votes/{user_id}").json()

    assert status["sessionId"] == session_id
    assert votes == {"1": {"song": 4}}


def test_purge_on_shutdown(snapshot_path: str) -> None:
    settings = Settings(snapshot_path=snapshot_path, purge_on_shutdown=True)
    with TestClient(create_app(settings)) as client:
        start(client)

    with TestClient(create_app(settings)) as client:
        assert client.get("/api/admin/status").json()["sessionId"] is None


def test_persistence_warning_is_reported(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    settings = Settings(snapshot_path=str(blocker / "session.sqlite"))

    with TestClient(create_app(settings)) as client:
        response = client.post("/api/admin/init", json={"numContestants": 1})
        status = client.get("/api/admin/status").json()

    assert response.status_code == 200
    assert "could not be saved" in response.json()["persistenceWarning"]
    assert status["sessionId"] == response.json()["sessionId"]
