"""
Test suite for Team routes
Tests routes defined in routes/team_routes.py
"""

import pytest
from app import db
from database.models import Team as DBTeam, Player as DBPlayer


# ==================== Helpers ====================

def _valid_team(name="New Test Team", num_players=11):
    """Team body accepted by POST /api/teams. First player keeps wicket."""
    players = [{"name": "Player 1", "position": "Wicket-keeper"}]
    players += [f"Player {i}" for i in range(2, num_players + 1)]
    return {"name": name, "captain": "Player 1", "players": players}


class TestCreateTeam:
    def test_create_team(self, authenticated_client, regular_user):
        response = authenticated_client.post("/api/teams", json=_valid_team())
        assert response.status_code == 201
        team = response.get_json()["team"]
        assert team["name"] == "New Test Team"
        assert team["playerCount"] == 11
        assert team["players"][0]["position"] == "Wicket-keeper"

        row = db.session.get(DBTeam, team["id"])
        assert row.user_id == regular_user.id
        assert DBPlayer.query.filter_by(team_id=row.id).count() == 11

    def test_requires_login(self, client):
        assert client.post("/api/teams", json=_valid_team()).status_code == 401

    def test_name_required(self, authenticated_client):
        response = authenticated_client.post("/api/teams", json={"players": []})
        assert response.status_code == 400

    def test_duplicate_name_is_case_insensitive(self, authenticated_client, test_team):
        response = authenticated_client.post("/api/teams", json=_valid_team(name="  test warriors "))
        assert response.status_code == 409

    def test_same_name_for_another_user_is_fine(self, other_client, test_team):
        response = other_client.post("/api/teams", json=_valid_team(name=test_team.name))
        assert response.status_code == 201

    @pytest.mark.parametrize("players", [
        "not a list",
        [{"name": ""}],
        [{"name": "Solo", "position": "Twelfth man"}],
        ["Twin", "twin"],
        [f"P{i}" for i in range(26)],
        [42],
    ])
    def test_invalid_players(self, authenticated_client, players):
        response = authenticated_client.post("/api/teams", json={"name": "Bad Roster", "players": players})
        assert response.status_code == 400
        assert DBTeam.query.filter_by(name="Bad Roster").first() is None


class TestReadTeams:
    def test_list_own_teams_only(self, authenticated_client, test_team, test_team_2, foreign_team):
        data = authenticated_client.get("/api/teams").get_json()
        names = {t["name"] for t in data["teams"]}
        assert names == {"Test Warriors", "Test Champions"}

    def test_get_team_with_players(self, authenticated_client, test_team):
        data = authenticated_client.get(f"/api/teams/{test_team.id}").get_json()
        assert data["team"]["id"] == test_team.id
        assert len(data["team"]["players"]) == 11
        assert {p["teamId"] for p in data["team"]["players"]} == {test_team.id}

    def test_foreign_team_is_not_found(self, authenticated_client, foreign_team):
        response = authenticated_client.get(f"/api/teams/{foreign_team.id}")
        assert response.status_code == 404
