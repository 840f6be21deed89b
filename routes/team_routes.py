"""Minimal roster routes: teams with an inline player list."""

from flask import jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func

PLAYER_POSITIONS = ("Batsman", "Bowler", "All-rounder", "Wicket-keeper")
MAX_PLAYERS = 25


def register_team_routes(
    app,
    *,
    db,
    Team,
    Player,
):
    # ── Internal helpers ──────────────────────────────────────────────────────

    def _extract_player_list(raw_list):
        """
        Parse a list of player dicts from the request body.
        Returns (list[dict], error_str|None).
        """
        if not isinstance(raw_list, list):
            return None, "players must be a list."
        if len(raw_list) > MAX_PLAYERS:
            return None, f"A team can have at most {MAX_PLAYERS} players."

        players = []
        seen = set()
        for idx, item in enumerate(raw_list, start=1):
            if isinstance(item, str):
                item = {"name": item}
            if not isinstance(item, dict):
                return None, f"Invalid player item at position {idx}."
            name = str(item.get("name") or item.get("playerName") or "").strip()
            position = str(item.get("position", "")).strip() or None
            if not name:
                return None, f"Player {idx}: name is required."
            if len(name) > 50:
                return None, f"Player {idx}: name must be 50 characters or fewer."
            if position is not None and position not in PLAYER_POSITIONS:
                return None, f"Player {idx}: position must be one of {', '.join(PLAYER_POSITIONS)}."
            if name.lower() in seen:
                return None, f"Player {idx}: duplicate name '{name}'."
            seen.add(name.lower())
            players.append({"name": name, "position": position})
        return players, None

    def _find_name_conflict(user_id, team_name):
        """Existing team for the user whose name matches case-insensitively."""
        normalized = (team_name or "").strip().lower()
        if not normalized:
            return None
        return Team.query.filter(
            Team.user_id == user_id,
            func.lower(func.trim(Team.name)) == normalized,
        ).first()

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.route("/api/teams", methods=["POST"])
    @login_required
    def create_team():
        data = request.get_json(silent=True) or {}
        name = str(data.get("name", "")).strip()
        if not name:
            return jsonify({"success": False, "message": "Team name is required"}), 400
        if len(name) > 50:
            return jsonify({"success": False, "message": "Team name must be 50 characters or fewer"}), 400
        if _find_name_conflict(current_user.id, name):
            return jsonify({"success": False, "message": f"You already have a team named '{name}'"}), 409

        players, err = _extract_player_list(data.get("players", []))
        if err:
            return jsonify({"success": False, "message": err}), 400

        team = Team(
            user_id=current_user.id,
            name=name,
            captain=(data.get("captain") or "").strip() or None,
            description=(data.get("description") or "").strip() or None,
            logo=(data.get("logo") or "").strip() or None,
        )
        db.session.add(team)
        db.session.flush()  # get team.id

        for p in players:
            db.session.add(Player(team_id=team.id, name=p["name"], position=p["position"]))
        db.session.commit()

        app.logger.info(f"Team '{team.name}' created by {current_user.id} with {len(players)} players")
        return jsonify({"success": True, "team": team.to_dict(include_players=True)}), 201

    @app.route("/api/teams")
    @login_required
    def list_teams():
        teams = Team.query.filter_by(user_id=current_user.id).order_by(Team.created_at.desc()).all()
        return jsonify({"success": True, "teams": [t.to_dict() for t in teams]})

    @app.route("/api/teams/<team_id>")
    @login_required
    def get_team(team_id):
        team = Team.query.filter_by(id=team_id, user_id=current_user.id).first()
        if team is None:
            return jsonify({"success": False, "message": "Team not found", "errorCode": "NOT_FOUND"}), 404
        return jsonify({"success": True, "team": team.to_dict(include_players=True)})
