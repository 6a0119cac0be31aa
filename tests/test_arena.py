"""
tests/test_arena.py - HTTP command layer tests.

Uses FastAPI's TestClient - no server process needed.
"""

import random

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from arena.db import ArenaDB
from arena.server import app, bracket_error_handler
from bracketbot.errors import BracketError
from bracketbot.identity import IdentityClient
from bracketbot.players import PlayerDirectory
from bracketbot.registry import TournamentRegistry


def _riot_api(request: httpx.Request) -> httpx.Response:
    name = request.url.path.split("/")[-2]
    if name.startswith("Ghost"):
        return httpx.Response(404)
    if name.startswith("Busy"):
        return httpx.Response(429, headers={"Retry-After": "0"})
    return httpx.Response(200, json={"puuid": f"puuid-{name.lower()}"})


@pytest.fixture
def db():
    """Fresh in-memory DB for each test."""
    return ArenaDB(":memory:")


@pytest.fixture
def client(db):
    """FastAPI test client backed by an in-memory DB."""
    import arena.server as srv

    # Bare app without lifespan so it doesn't overwrite the services
    test_app = FastAPI()
    for route in app.routes:
        test_app.routes.append(route)
    test_app.add_exception_handler(BracketError, bracket_error_handler)

    identity = IdentityClient(
        "RGAPI-test",
        transport=httpx.MockTransport(_riot_api),
        max_retries=1,
        sleep=lambda s: None,
    )
    srv._registry = TournamentRegistry(db, rng=random.Random(0))
    srv._players = PlayerDirectory(db, identity)
    with TestClient(test_app) as c:
        yield c
    srv._registry = None
    srv._players = None
    identity.close()


def _link(client, user_id, riot_id, group="g1"):
    resp = client.post(f"/groups/{group}/players", json={"user_id": user_id, "riot_id": riot_id})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _create(client, name="Cup", team_count=4, group="g1"):
    resp = client.post(f"/groups/{group}/tournaments", json={"name": name, "team_count": team_count})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _filled(client, team_count=4):
    """Tournament in registration with every slot taken."""
    t = _create(client, team_count=team_count)
    client.post(f"/tournaments/{t['id']}/registration")
    for i in range(team_count):
        _link(client, f"user_{i}", f"Captain{i}#NA1")
        resp = client.post(
            f"/tournaments/{t['id']}/teams",
            json={"name": f"Team {i}", "captain_id": f"user_{i}"},
        )
        assert resp.status_code == 201, resp.text
    return t


# ======================================================================
# Tournament Tests
# ======================================================================


class TestTournaments:
    def test_create(self, client):
        data = _create(client)
        assert data["status"] == "draft"
        assert data["total_stages"] == 2
        assert data["summary"] == "Cup (4 teams, draft)"

    def test_create_bad_capacity(self, client):
        resp = client.post("/groups/g1/tournaments", json={"name": "Cup", "team_count": 6})
        assert resp.status_code == 422
        assert resp.json()["error"] == "ValidationError"

    def test_create_duplicate(self, client):
        _create(client)
        resp = client.post("/groups/g1/tournaments", json={"name": "Cup", "team_count": 4})
        assert resp.status_code == 409

    def test_list_by_status(self, client):
        a = _create(client, name="A")
        _create(client, name="B")
        client.post(f"/tournaments/{a['id']}/registration")

        all_ = client.get("/groups/g1/tournaments").json()
        assert [t["name"] for t in all_] == ["A", "B"]

        reg = client.get("/groups/g1/tournaments", params={"status": "registration"}).json()
        assert [t["name"] for t in reg] == ["A"]

    def test_list_unknown_status(self, client):
        resp = client.get("/groups/g1/tournaments", params={"status": "nope"})
        assert resp.status_code == 422

    def test_get_unknown(self, client):
        resp = client.get("/tournaments/t_nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "TournamentNotFoundError"

    def test_delete(self, client):
        t = _create(client)
        assert client.delete(f"/tournaments/{t['id']}").json() == {"success": True}
        assert client.delete(f"/tournaments/{t['id']}").status_code == 404

    def test_registration_twice_conflicts(self, client):
        t = _create(client)
        assert client.post(f"/tournaments/{t['id']}/registration").status_code == 200
        assert client.post(f"/tournaments/{t['id']}/registration").status_code == 409


# ======================================================================
# Team Tests
# ======================================================================


class TestTeams:
    def test_captain_must_be_linked(self, client):
        t = _create(client)
        client.post(f"/tournaments/{t['id']}/registration")
        resp = client.post(
            f"/tournaments/{t['id']}/teams",
            json={"name": "Alpha", "captain_id": "stranger"},
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "PlayerNotFoundError"

    def test_captain_name_defaults_to_riot_id(self, client):
        t = _create(client)
        client.post(f"/tournaments/{t['id']}/registration")
        _link(client, "user_1", "Captain#NA1")
        team = client.post(
            f"/tournaments/{t['id']}/teams",
            json={"name": "Alpha", "captain_id": "user_1"},
        ).json()
        assert team["captain_name"] == "Captain#NA1"

    def test_full_tournament(self, client):
        t = _filled(client)
        _link(client, "late", "Late#NA1")
        resp = client.post(
            f"/tournaments/{t['id']}/teams",
            json={"name": "Late", "captain_id": "late"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "CapacityExceededError"

    def test_list_teams(self, client):
        t = _filled(client)
        teams = client.get(f"/tournaments/{t['id']}/teams").json()
        assert [team["name"] for team in teams] == ["Team 0", "Team 1", "Team 2", "Team 3"]


# ======================================================================
# Match Tests
# ======================================================================


class TestMatches:
    def test_start_requires_full_roster(self, client):
        t = _create(client, team_count=8)
        client.post(f"/tournaments/{t['id']}/registration")
        resp = client.post(f"/tournaments/{t['id']}/start")
        assert resp.status_code == 409
        assert "8 more teams" in resp.json()["detail"]

    def test_full_flow(self, client):
        t = _filled(client)
        started = client.post(f"/tournaments/{t['id']}/start").json()
        assert started["status"] == "active"
        assert len(started["matches"]) == 3

        current = client.get(f"/tournaments/{t['id']}/matches", params={"current": "true"}).json()
        assert [m["stage_name"] for m in current] == ["Semifinal", "Semifinal"]

        m1, m2 = current
        r1 = client.post(
            f"/tournaments/{t['id']}/matches/{m1['id']}/result",
            json={"home_score": 13, "away_score": 7},
        ).json()
        assert r1["winner"]["id"] == m1["home_team_id"]
        assert r1["saved"] is True
        assert r1["advanced"][0]["status"] == "pending"

        r2 = client.post(
            f"/tournaments/{t['id']}/matches/{m2['id']}/result",
            json={"home_score": 12, "away_score": 14},
        ).json()
        final = r2["advanced"][0]
        assert final["status"] == "ready"
        assert final["stage_name"] == "Final"

        r3 = client.post(
            f"/tournaments/{t['id']}/matches/{final['id']}/result",
            json={"home_score": 13, "away_score": 9},
        ).json()
        assert r3["progress"]["is_completed"] is True
        assert r3["progress"]["champion"]["id"] == final["home_team_id"]
        assert r3["progress"]["runner_up"]["id"] == final["away_team_id"]

        progress = client.get(f"/tournaments/{t['id']}/progress").json()
        assert progress["is_completed"] is True
        assert client.get(f"/tournaments/{t['id']}").json()["status"] == "completed"

    def test_invalid_score(self, client):
        t = _filled(client)
        client.post(f"/tournaments/{t['id']}/start")
        match = client.get(f"/tournaments/{t['id']}/matches").json()[0]
        resp = client.post(
            f"/tournaments/{t['id']}/matches/{match['id']}/result",
            json={"home_score": 13, "away_score": 12},
        )
        assert resp.status_code == 422
        assert resp.json()["problem"] == "needs_overtime"

    def test_report_twice(self, client):
        t = _filled(client)
        client.post(f"/tournaments/{t['id']}/start")
        match = client.get(f"/tournaments/{t['id']}/matches").json()[0]
        url = f"/tournaments/{t['id']}/matches/{match['id']}/result"
        client.post(url, json={"home_score": 13, "away_score": 2})
        resp = client.post(url, json={"home_score": 13, "away_score": 2})
        assert resp.status_code == 409
        assert resp.json()["error"] == "AlreadyCompletedError"

    def test_unassigned_final(self, client):
        t = _filled(client)
        started = client.post(f"/tournaments/{t['id']}/start").json()
        final = next(m for m in started["matches"] if m["stage"] == 2)
        resp = client.post(
            f"/tournaments/{t['id']}/matches/{final['id']}/result",
            json={"home_score": 13, "away_score": 2},
        )
        assert resp.status_code == 409

    def test_unknown_match(self, client):
        t = _filled(client)
        client.post(f"/tournaments/{t['id']}/start")
        resp = client.post(
            f"/tournaments/{t['id']}/matches/match_nope/result",
            json={"home_score": 13, "away_score": 2},
        )
        assert resp.status_code == 404


# ======================================================================
# Player Tests
# ======================================================================


class TestPlayers:
    def test_link_and_profile(self, client):
        _link(client, "user_1", "Player#NA1")
        profile = client.get("/groups/g1/players/user_1").json()
        assert profile["riot_id"] == "Player#NA1"
        assert profile["region"] == "americas"

    def test_link_twice(self, client):
        _link(client, "user_1", "Player#NA1")
        resp = client.post("/groups/g1/players", json={"user_id": "user_1", "riot_id": "Other#NA1"})
        assert resp.status_code == 409

    def test_malformed_riot_id(self, client):
        resp = client.post("/groups/g1/players", json={"user_id": "user_1", "riot_id": "nohash"})
        assert resp.status_code == 422
        assert resp.json()["kind"] == "malformed"

    def test_unknown_riot_id(self, client):
        resp = client.post("/groups/g1/players", json={"user_id": "user_1", "riot_id": "Ghost#NA1"})
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"

    def test_rate_limited(self, client):
        resp = client.post("/groups/g1/players", json={"user_id": "user_1", "riot_id": "Busy#NA1"})
        assert resp.status_code == 429

    def test_verify_and_unlink(self, client):
        _link(client, "user_1", "Player#NA1")
        assert client.post("/groups/g1/players/user_1/verify").status_code == 200
        assert client.delete("/groups/g1/players/user_1").json() == {"success": True}
        assert client.delete("/groups/g1/players/user_1").status_code == 404
        assert client.get("/groups/g1/players/user_1").status_code == 404


class TestHealth:
    def test_health(self, client):
        _create(client)
        data = client.get("/health").json()
        assert data == {"status": "ok", "tournaments": 1, "identity_configured": True}
