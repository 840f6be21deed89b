"""Commentary history, live stream and on-demand generation routes."""

from flask import Response, jsonify, request
from flask_login import current_user, login_required

from engine.broadcast_hub import SSE_HEADERS
from engine.commentary_pipeline import CommentaryJob
from engine.errors import NotFoundOrForbidden, ValidationError
from engine.events import EventType

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


def _parse_limit(raw):
    if raw is None or raw == "":
        return DEFAULT_HISTORY_LIMIT
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    return min(limit, MAX_HISTORY_LIMIT)


def _parse_event_type(raw, required=False):
    if not raw:
        if required:
            raise ValidationError("eventType is required")
        return None
    event_type = EventType.parse(raw)
    if event_type is None:
        raise ValidationError(f"Unknown eventType: {raw}")
    return event_type


def register_commentary_routes(
    app,
    *,
    limiter,
    db,
    Commentary,
    hub,
    pipeline,
    scoring,
    rate_limit,
):
    @app.route("/api/commentary/match/<match_id>")
    @login_required
    def commentary_history(match_id):
        scoring.load_owned_match(match_id, current_user.id)
        limit = _parse_limit(request.args.get("limit"))
        event_type = _parse_event_type(request.args.get("eventType"))

        query = Commentary.query.filter_by(match_id=match_id)
        if event_type is not None:
            query = query.filter_by(event_type=event_type.value)
        records = query.order_by(Commentary.created_at.desc()).limit(limit).all()
        return jsonify({
            "success": True,
            "count": len(records),
            "commentary": [c.to_dict() for c in records],
        })

    @app.route("/api/commentary/stream/<match_id>")
    @login_required
    def commentary_stream(match_id):
        scoring.load_owned_match(match_id, current_user.id)
        subscription = hub.subscribe(match_id)

        def generate():
            try:
                yield from subscription.frames()
            finally:
                # Runs when the client disconnects or the response is closed
                hub.unsubscribe(subscription)

        return Response(generate(), headers=SSE_HEADERS, mimetype="text/event-stream")

    @app.route("/api/commentary/generate", methods=["POST"])
    @login_required
    @limiter.limit(rate_limit)
    def generate_commentary():
        data = request.get_json(silent=True) or {}
        match_id = data.get("matchId")
        if not match_id:
            raise ValidationError("matchId is required")
        event_type = _parse_event_type(data.get("eventType"), required=True)
        event_data = data.get("eventData") or {}
        if not isinstance(event_data, dict):
            raise ValidationError("eventData must be an object")
        innings = event_data.get("innings")
        if innings is not None and (type(innings) is not int or innings not in (1, 2)):
            raise ValidationError("eventData.innings must be 1 or 2")

        match = scoring.load_owned_match(match_id, current_user.id)
        job = CommentaryJob(
            match.id,
            event_type,
            match.to_state(),
            match.team_names(),
            event_data,
            with_audio=bool(data.get("withAudio")),
            innings=innings,
            voice=data.get("voice"),
        )
        record = pipeline.produce(job)
        return jsonify({"success": True, "commentary": record.to_dict()}), 201

    @app.route("/api/commentary/synthesize", methods=["POST"])
    @login_required
    @limiter.limit(rate_limit)
    def synthesize_commentary():
        data = request.get_json(silent=True) or {}
        commentary_id = data.get("commentaryId")
        if not commentary_id:
            raise ValidationError("commentaryId is required")

        record = db.session.get(Commentary, commentary_id)
        if record is None or record.match.created_by != current_user.id:
            raise NotFoundOrForbidden("Commentary not found")

        audio = pipeline.attach_audio(record, voice=data.get("voice"))
        if audio is None:
            return jsonify({
                "success": False,
                "message": "Speech synthesis is unavailable, commentary kept without audio",
                "errorCode": "SPEECH_UNAVAILABLE",
            }), 503
        return jsonify({"success": True, "commentary": record.to_dict()})
