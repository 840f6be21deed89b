import os
import time
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from flask import Flask, g, jsonify, request, send_from_directory
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException

from database import db
from database.models import Commentary, Match, Player, Team, User
from engine.broadcast_hub import BroadcastHub
from engine.commentary_engine import CommentaryEngine
from engine.commentary_pipeline import CommentaryPipeline
from engine.errors import ScoringError
from engine.llm_client import DEFAULT_MODEL_NAME, LLMClient
from engine.match_locks import MatchLockRegistry
from engine.prompts import build_system_instruction
from engine.scoring_service import ScoringService
from engine.speech import SpeechSynthesizer
from routes.auth_routes import register_auth_routes
from routes.commentary_routes import register_commentary_routes
from routes.match_routes import register_match_routes
from routes.team_routes import register_team_routes
from utils.helpers import PROJECT_ROOT, load_config

APP_NAME = "ScoreCastX"


def _project_path(path):
    return path if os.path.isabs(path) else os.path.join(PROJECT_ROOT, path)


def _database_uri(uri):
    # Relative sqlite paths are taken from the project root
    prefix = "sqlite:///"
    if uri.startswith(prefix) and uri != "sqlite:///:memory:":
        path = uri[len(prefix):]
        if not os.path.isabs(path):
            path = _project_path(path)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            return prefix + path
    return uri


def _setup_logging():
    log_dir = os.getenv("SCORECASTX_LOG_DIR") or os.path.join(PROJECT_ROOT, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "execution.log")

    # Clear existing handlers to avoid duplicates
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logging.basicConfig(level=logging.DEBUG, handlers=[file_handler, console_handler])


# ────── App Factory ──────
def create_app():
    # --- Flask setup ---
    app = Flask(__name__)
    config = load_config()

    _setup_logging()
    app.logger = logging.getLogger(APP_NAME)
    app.logger.setLevel(logging.DEBUG)

    # --- Secret key setup ---
    secret = config["app"].get("secret_key")
    if not secret or not isinstance(secret, str):
        secret = os.urandom(24).hex()
        app.logger.warning("Using random Flask SECRET_KEY, sessions won't persist across restarts")

    app.config["SECRET_KEY"] = secret
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SCORECASTX"] = config

    # --- Database ---
    app.config["SQLALCHEMY_DATABASE_URI"] = _database_uri(config["database"]["uri"])
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    db.init_app(app)
    with app.app_context():
        db.create_all()

    # --- Flask-Login setup ---
    login_manager = LoginManager(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "message": "Authentication required",
                        "errorCode": "UNAUTHORIZED"}), 401

    # --- Rate limiting ---
    rate_limits = config["rate_limits"]
    limiter = Limiter(
        get_remote_address,
        app=app,
        default_limits=[rate_limits["default"]],
        storage_uri="memory://",
    )

    # --- Live commentary stack ---
    broadcast_cfg = config["broadcast"]
    hub = BroadcastHub(
        heartbeat_seconds=broadcast_cfg["heartbeat_seconds"],
        sweep_seconds=broadcast_cfg["sweep_seconds"],
        queue_size=broadcast_cfg["queue_size"],
    )

    commentary_cfg = config["commentary"]
    llm_client = LLMClient(
        system_prompt=build_system_instruction(commentary_cfg["max_words"]),
        model_name=commentary_cfg.get("model_name") or DEFAULT_MODEL_NAME,
        max_output_tokens=commentary_cfg["max_output_tokens"],
        temperature=commentary_cfg["temperature"],
        timeout_ms=commentary_cfg["timeout_ms"],
    )

    speech_cfg = config["speech"]
    audio_dir = _project_path(speech_cfg["audio_dir"])
    synthesizer = SpeechSynthesizer(
        audio_dir=audio_dir,
        url_prefix=speech_cfg["audio_url_prefix"],
        voice=speech_cfg["voice"],
        language_code=speech_cfg["language_code"],
        enabled=speech_cfg["enabled"],
    )

    pipeline = CommentaryPipeline(
        app,
        engine=CommentaryEngine(llm_client=llm_client),
        hub=hub,
        synthesizer=synthesizer,
        max_workers=commentary_cfg["max_workers"],
        enabled=commentary_cfg["enabled"],
        auto_audio=commentary_cfg["auto_audio"],
        synchronous=commentary_cfg["synchronous"],
    )
    scoring = ScoringService(hub, pipeline, locks=MatchLockRegistry())

    app.extensions["broadcast_hub"] = hub
    app.extensions["commentary_pipeline"] = pipeline
    app.extensions["scoring_service"] = scoring

    if broadcast_cfg["background_loops"]:
        hub.start()

    # --- Request logging ---
    @app.before_request
    def log_request_start():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        started = g.get("request_started")
        elapsed = (time.perf_counter() - started) * 1000 if started else 0
        app.logger.info(f"{request.remote_addr} {request.method} {request.path} "
                        f"{response.status_code} {elapsed:.1f}ms")
        return response

    # --- Error handlers ---
    @app.errorhandler(ScoringError)
    def handle_scoring_error(e):
        if e.status_code >= 500:
            app.logger.error(f"[{e.error_code}] {e.message}")
        else:
            app.logger.info(f"[{e.error_code}] {request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        db.session.rollback()
        app.logger.error(f"Unhandled error on {request.method} {request.path}: {e}", exc_info=True)
        return jsonify({"success": False, "message": "Internal server error",
                        "errorCode": "INTERNAL_ERROR"}), 500

    # --- Core routes ---
    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "broadcast": hub.stats(),
        })

    @app.route(f"{speech_cfg['audio_url_prefix'].rstrip('/')}/<path:filename>")
    def serve_audio(filename):
        return send_from_directory(audio_dir, filename, mimetype="audio/mpeg")

    register_auth_routes(app, limiter=limiter, db=db, User=User, rate_limit=rate_limits["auth"])
    register_team_routes(app, db=db, Team=Team, Player=Player)
    register_match_routes(app, limiter=limiter, Match=Match, scoring=scoring,
                          rate_limit=rate_limits["scoring"])
    register_commentary_routes(app, limiter=limiter, db=db, Commentary=Commentary, hub=hub,
                               pipeline=pipeline, scoring=scoring,
                               rate_limit=rate_limits["scoring"])

    app.logger.info(f"{APP_NAME} ready (database: {app.config['SQLALCHEMY_DATABASE_URI']})")
    return app


# ────── Run Server ──────
if __name__ == "__main__":
    app = create_app()
    HOST = "127.0.0.1"
    PORT = 5000
    print(f"✅ {APP_NAME} is up and running!")
    print(f"🌐 Access the API at: http://{HOST}:{PORT}")
    app.run(host=HOST, port=PORT, debug=app.config["SCORECASTX"]["app"]["debug"],
            use_reloader=False, threaded=True)
