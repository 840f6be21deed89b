"""Match setup and live scoring route registration."""

from flask import jsonify, request
from flask_login import current_user, login_required


def register_match_routes(
    app,
    *,
    limiter,
    Match,
    scoring,
    rate_limit,
):
    def _body():
        return request.get_json(silent=True) or {}

    @app.route("/api/matches", methods=["GET"])
    @login_required
    def list_matches():
        matches = (
            Match.query.filter_by(created_by=current_user.id)
            .order_by(Match.created_at.desc())
            .all()
        )
        return jsonify({"success": True, "matches": [m.to_summary() for m in matches]})

    @app.route("/api/matches", methods=["POST"])
    @login_required
    def create_match():
        match = scoring.create_match(current_user.id, _body())
        return jsonify({"success": True, "match": match.to_dict()}), 201

    @app.route("/api/matches/<match_id>", methods=["GET"])
    @login_required
    def get_match(match_id):
        match = scoring.load_owned_match(match_id, current_user.id)
        return jsonify({"success": True, "match": match.to_dict()})

    # ── Live scoring ──────────────────────────────────────────────────────────

    @app.route("/api/matches/<match_id>/select-batter", methods=["POST"])
    @login_required
    @limiter.limit(rate_limit)
    def select_batter(match_id):
        return jsonify(scoring.select_batter(match_id, current_user.id, _body()))

    @app.route("/api/matches/<match_id>/score-runs", methods=["POST"])
    @login_required
    @limiter.limit(rate_limit)
    def score_runs(match_id):
        return jsonify(scoring.record_runs(match_id, current_user.id, _body()))

    @app.route("/api/matches/<match_id>/score-extra", methods=["POST"])
    @login_required
    @limiter.limit(rate_limit)
    def score_extra(match_id):
        return jsonify(scoring.record_extra(match_id, current_user.id, _body()))

    @app.route("/api/matches/<match_id>/player-out", methods=["POST"])
    @login_required
    @limiter.limit(rate_limit)
    def player_out(match_id):
        return jsonify(scoring.record_wicket(match_id, current_user.id, _body()))

    @app.route("/api/matches/<match_id>/end-innings", methods=["POST"])
    @login_required
    @limiter.limit(rate_limit)
    def end_innings(match_id):
        app.logger.info(f"[EndInnings] {current_user.id} closing innings for match {match_id}")
        return jsonify(scoring.end_innings(match_id, current_user.id))
