"""
API integration tests.
Uses TestClient to avoid starting a server.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from streetballer.api import app
from streetballer.persistence.db import init_db, set_db_path

from conftest import MATCH_DATE


@pytest.fixture(autouse=True)
def isolated_db(tmp_path):
    """Use a temporary DB for each test."""
    db_path = tmp_path / "api_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    yield db_path


@pytest.fixture
def client():
    return TestClient(app)


def _signup(client, username: str) -> tuple[str, dict[str, str]]:
    resp = client.post("/signup", json={"username": username, "password": "secret123"})
    assert resp.status_code == 200
    data = resp.json()
    return data["user_id"], {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
def match_world(client):
    """Two teams of two (captain + player), a scheduled match and all four participants."""
    users = {name: _signup(client, name) for name in ("cap_a", "pl_a", "cap_b", "pl_b")}
    teams = {}
    for side, captain, player in (("A", "cap_a", "pl_a"), ("B", "cap_b", "pl_b")):
        resp = client.post("/teams", json={"name": f"Team {side}"}, headers=users[captain][1])
        assert resp.status_code == 200
        team_id = resp.json()["team"]["id"]
        resp = client.post(
            f"/teams/{team_id}/members", json={"userId": users[player][0]}, headers=users[captain][1]
        )
        assert resp.status_code == 200
        teams[side] = team_id
    resp = client.post(
        "/matches",
        json={
            "team1Id": teams["A"],
            "team2Id": teams["B"],
            "pitchId": "pitch-7",
            "matchDate": MATCH_DATE.isoformat(),
            "format": "5v5",
        },
        headers=users["cap_a"][1],
    )
    assert resp.status_code == 200
    match_id = resp.json()["match"]["id"]
    for side, names in (("A", ("cap_a", "pl_a")), ("B", ("cap_b", "pl_b"))):
        for name in names:
            resp = client.post(
                f"/matches/{match_id}/participants",
                json={"player_id": users[name][0], "team_id": teams[side]},
                headers=users["cap_a"][1],
            )
            assert resp.status_code == 200
    return {"users": users, "teams": teams, "match_id": match_id}


def test_signup_login_and_me(client):
    user_id, headers = _signup(client, "alice")
    resp = client.post("/login", json={"username": "alice", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["user_id"] == user_id

    resp = client.get("/me", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["user"]["username"] == "alice"
    assert data["profile"]["trust_points"] == 0

    resp = client.post("/players/profile", json={"displayName": "Ali"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["profile"]["display_name"] == "Ali"


def test_signup_duplicate_and_bad_login(client):
    _signup(client, "bob")
    resp = client.post("/signup", json={"username": "bob", "password": "another1"})
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "validation_error"
    resp = client.post("/login", json={"username": "bob", "password": "wrong-password"})
    assert resp.status_code == 401


def test_login_required(client):
    resp = client.post("/teams", json={"name": "Nobody's"})
    assert resp.status_code == 401
    assert resp.json() == {"error": {"kind": "unauthorized", "message": "Login required"}}

    resp = client.post("/login", json={"username": "nobody", "password": "whatever1"})
    assert resp.status_code == 401
    assert resp.json()["error"]["kind"] == "unauthorized"


def test_unknown_match_is_404(client):
    resp = client.get("/matches/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {
        "error": {"kind": "match_not_found", "message": "Match with ID does-not-exist not found"}
    }


def test_negative_score_rejected(client, match_world):
    headers = match_world["users"]["cap_a"][1]
    match_id = match_world["match_id"]
    resp = client.post(f"/matches/{match_id}/score", json={"team1Score": -1, "team2Score": 2}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "invalid_score"
    assert client.get(f"/matches/{match_id}").json()["match"]["status"] == "scheduled"


def test_unknown_score_event_type_rejected(client, match_world):
    users, match_id = match_world["users"], match_world["match_id"]
    resp = client.post(
        f"/matches/{match_id}/score",
        json={
            "team1Score": 1,
            "team2Score": 0,
            "events": [
                {"scorerId": users["pl_a"][0], "minute": 3, "teamId": match_world["teams"]["A"],
                 "eventType": "bogus"},
            ],
        },
        headers=users["cap_a"][1],
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "validation_error"
    assert client.get(f"/matches/{match_id}").json()["match"]["status"] == "scheduled"
    assert client.get(f"/match-events/match/{match_id}").json()["events"] == []


def test_approval_flow_completes_match(client, match_world):
    users, match_id = match_world["users"], match_world["match_id"]
    resp = client.post(
        f"/matches/{match_id}/score",
        json={
            "team1Score": 2,
            "team2Score": 0,
            "events": [
                {"scorerId": users["pl_a"][0], "assisterId": users["cap_a"][0], "minute": 14,
                 "teamId": match_world["teams"]["A"]},
            ],
        },
        headers=users["cap_a"][1],
    )
    assert resp.status_code == 200
    assert resp.json()["match"]["status"] == "pending-confirmation"

    for captain in ("cap_a", "cap_b"):
        resp = client.post(f"/matches/{match_id}/decision", json={"approved": True}, headers=users[captain][1])
        assert resp.status_code == 200
    body = resp.json()
    assert body["disputed"] is False
    assert body["match"]["status"] == "completed"

    stats = client.get(f"/match-events/match/{match_id}/stats").json()
    assert stats["goal_count"] == 1
    summary = client.get(f"/trust/summary/{users['pl_a'][0]}").json()
    assert summary["stats"]["wins"] == 1
    assert summary["stats"]["goals_scored"] == 1


def test_only_captains_decide(client, match_world):
    users, match_id = match_world["users"], match_world["match_id"]
    client.post(f"/matches/{match_id}/score", json={"team1Score": 1, "team2Score": 0}, headers=users["cap_a"][1])
    resp = client.post(f"/matches/{match_id}/decision", json={"approved": True}, headers=users["pl_b"][1])
    assert resp.status_code == 403
    assert resp.json()["error"]["kind"] == "not_eligible"


def test_dispute_flow_round_trip(client, match_world):
    users, teams, match_id = match_world["users"], match_world["teams"], match_world["match_id"]
    client.post(f"/matches/{match_id}/score", json={"team1Score": 3, "team2Score": 1}, headers=users["cap_a"][1])

    resp = client.post(
        f"/matches/{match_id}/decision",
        json={"approved": False, "reason": "Score was 2-1"},
        headers=users["cap_b"][1],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["disputed"] is True
    assert body["match"]["status"] == "disputed"
    dispute_id = body["dispute"]["id"]

    again = client.post(f"/matches/{match_id}/decision", json={"approved": False}, headers=users["cap_a"][1])
    assert again.status_code == 409
    assert again.json()["error"]["kind"] == "dispute_already_open"

    open_disputes = client.get("/disputes").json()["disputes"]
    assert [d["id"] for d in open_disputes] == [dispute_id]

    # Votes must come from the authenticated player
    resp = client.post(
        f"/disputes/{dispute_id}/vote",
        json={"playerId": users["pl_a"][0], "voteForTeamId": teams["A"]},
        headers=users["cap_a"][1],
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["kind"] == "player_not_eligible"

    # 4 participants: the second vote reaches quorum
    for name in ("cap_a", "pl_a"):
        resp = client.post(
            f"/disputes/{dispute_id}/vote",
            json={"playerId": users[name][0], "voteForTeamId": teams["A"]},
            headers=users[name][1],
        )
        assert resp.status_code == 200
    assert resp.json()["dispute"]["status"] == "resolved"
    assert resp.json()["tally"]["quorum_reached"] is True

    resp = client.post(
        f"/disputes/{dispute_id}/vote",
        json={"playerId": users["pl_b"][0], "voteForTeamId": teams["B"]},
        headers=users["pl_b"][1],
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["kind"] == "dispute_closed"

    assert client.get(f"/matches/{match_id}").json()["match"]["status"] == "completed"
    assert client.get(f"/trust/summary/{users['pl_a'][0]}").json()["current_balance"] == 5
    # Penalty from a zero balance stays at zero
    history = client.get(f"/trust/history/{users['cap_b'][0]}").json()
    assert history["current_balance"] == 0
    assert history["transactions"][0]["points"] == -3

    board = client.get("/trust/leaderboard").json()
    assert board["data"][0]["trust_score"] == 5


def test_dispute_detail(client, match_world):
    users, match_id = match_world["users"], match_world["match_id"]
    client.post(f"/matches/{match_id}/score", json={"team1Score": 0, "team2Score": 1}, headers=users["cap_a"][1])
    dispute_id = client.post(
        f"/matches/{match_id}/decision", json={"approved": False}, headers=users["cap_a"][1]
    ).json()["dispute"]["id"]
    resp = client.get(f"/disputes/{dispute_id}")
    assert resp.status_code == 200
    detail = resp.json()["dispute"]
    assert detail["disputing_team_id"] == match_world["teams"]["A"]
    assert detail["tally"]["required_votes"] == 2
    assert client.get("/disputes/nope").status_code == 404


def test_team_roster_requires_captain(client, match_world):
    users, teams = match_world["users"], match_world["teams"]
    resp = client.post(
        f"/teams/{teams['A']}/members", json={"userId": users["pl_b"][0]}, headers=users["pl_a"][1]
    )
    assert resp.status_code == 403
    team = client.get(f"/teams/{teams['A']}").json()
    assert {m["role"] for m in team["members"]} == {"captain", "player"}
