"""
Pytest fixtures for ScoreCastX testing.
Provides reusable test fixtures for database, app, clients, and test data.
"""

import json
import os
import sys
from datetime import datetime, timezone

import pytest
import yaml
from werkzeug.security import generate_password_hash

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import create_app, db
from database.models import User, Team as DBTeam, Player as DBPlayer
from engine.errors import ExternalServiceDegraded
from engine.speech import SpeechResult, estimate_audio_duration


# ==================== Fakes for external services ====================

class FakeLLM:
    """Stands in for LLMClient. Returns ``text`` or raises ``error``."""

    def __init__(self, text="What a moment in this contest!", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


class FailingLLM(FakeLLM):
    def __init__(self):
        super().__init__(error=ExternalServiceDegraded("gemini", "quota exceeded"))


class FakeSynthesizer:
    """Stands in for SpeechSynthesizer; writes nothing, returns a fixed URL."""

    def __init__(self, available=True):
        self.available = available
        self.calls = []

    def synthesize(self, text, voice=None):
        self.calls.append((text, voice))
        if not self.available:
            return None
        return SpeechResult(f"/audio/fake_{len(self.calls)}.mp3", estimate_audio_duration(text), None)


def parse_frames(chunks):
    """Decode ``data:`` SSE chunks into dicts, skipping heartbeat comments."""
    frames = []
    for chunk in chunks:
        if chunk.startswith("data: "):
            frames.append(json.loads(chunk[len("data: "):].strip()))
    return frames


# ==================== Application Fixtures ====================

@pytest.fixture(scope="function")
def test_config(tmp_path):
    """Create a temporary config file for testing."""
    config_path = tmp_path / "config.yaml"
    config_data = {
        "app": {
            "secret_key": "test-secret-key-for-testing-only-12345",
        },
        "database": {
            "uri": f"sqlite:///{(tmp_path / 'pytest_app.db').as_posix()}",
        },
        "commentary": {
            "enabled": True,
            "max_workers": 2,
            "synchronous": True,
        },
        "speech": {
            "enabled": False,
            "audio_dir": str(tmp_path / "audio"),
        },
        "broadcast": {
            "background_loops": False,
        },
        "rate_limits": {
            "default": "10000 per minute",
            "scoring": "10000 per minute",
            "auth": "10000 per minute",
        },
    }

    config_path.write_text(yaml.safe_dump(config_data, sort_keys=False), encoding="utf-8")
    return config_path


@pytest.fixture(scope="function")
def app(test_config, tmp_path, monkeypatch):
    """Create and configure a test Flask application instance."""
    monkeypatch.setenv("SCORECASTX_CONFIG_PATH", str(test_config))
    monkeypatch.setenv("SCORECASTX_LOG_DIR", str(tmp_path / "logs"))
    for var in ("FLASK_SECRET_KEY", "SCORECASTX_DB_URI", "GEMINI_MODEL_NAME"):
        monkeypatch.delenv(var, raising=False)

    app = create_app()
    app.config.update({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "LOGIN_DISABLED": False,
    })

    # Never reach the real generative-text service from tests
    pipeline = app.extensions["commentary_pipeline"]
    pipeline.engine.llm_client = None

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

    pipeline.shutdown()
    app.extensions["broadcast_hub"].stop()


@pytest.fixture(scope="function")
def client(app):
    """Create a test client for the app."""
    return app.test_client()


@pytest.fixture(scope="function")
def hub(app):
    return app.extensions["broadcast_hub"]


@pytest.fixture(scope="function")
def pipeline(app):
    return app.extensions["commentary_pipeline"]


@pytest.fixture(scope="function")
def scoring(app):
    return app.extensions["scoring_service"]


# ==================== User Fixtures ====================

def _make_user(email, password, display_name):
    user = User(
        id=email,
        password_hash=generate_password_hash(password),
        display_name=display_name,
        created_at=datetime.now(timezone.utc),
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope="function")
def regular_user(app):
    """Create the scorer who owns the test teams and matches."""
    return _make_user("testuser@example.com", "Password123!", "Test User")


@pytest.fixture(scope="function")
def other_user(app):
    """A second scorer who must never see the first one's data."""
    return _make_user("other@example.com", "Other123!", "Other User")


# ==================== Authentication Helpers ====================

@pytest.fixture(scope="function")
def authenticated_client(client, regular_user):
    """Return a client logged in as a regular user."""
    with client:
        client.post("/api/auth/login", json={
            "email": regular_user.email,
            "password": "Password123!",
        })
        yield client


@pytest.fixture(scope="function")
def other_client(app, other_user):
    """A separate client logged in as ``other_user``."""
    other = app.test_client()
    other.post("/api/auth/login", json={
        "email": other_user.email,
        "password": "Other123!",
    })
    return other


# ==================== Team Fixtures ====================

def _make_team(owner, name, player_names):
    team = DBTeam(name=name, user_id=owner.id, captain=player_names[0])
    db.session.add(team)
    db.session.flush()
    for idx, player_name in enumerate(player_names):
        position = "Wicket-keeper" if idx == 0 else ("Batsman" if idx < 6 else "Bowler")
        db.session.add(DBPlayer(team_id=team.id, name=player_name, position=position))
    db.session.commit()
    return team


@pytest.fixture(scope="function")
def test_team(app, regular_user):
    """Eleven-player team owned by ``regular_user``."""
    return _make_team(regular_user, "Test Warriors", [f"Warrior {i}" for i in range(1, 12)])


@pytest.fixture(scope="function")
def test_team_2(app, regular_user):
    """Second eleven-player team owned by ``regular_user``."""
    return _make_team(regular_user, "Test Champions", [f"Champion {i}" for i in range(1, 12)])


@pytest.fixture(scope="function")
def foreign_team(app, other_user):
    return _make_team(other_user, "Other Strikers", [f"Striker {i}" for i in range(1, 12)])


# ==================== Match Fixtures ====================

@pytest.fixture(scope="function")
def test_match(scoring, regular_user, test_team, test_team_2):
    """T20 match in setup; ``test_team`` won the toss and bats first."""
    return scoring.create_match(regular_user.id, {
        "team1Id": test_team.id,
        "team2Id": test_team_2.id,
        "tossWinnerId": test_team.id,
        "coinResult": "heads",
        "tossChoice": "batting",
        "totalOvers": 20,
    })


@pytest.fixture(scope="function")
def short_match(scoring, regular_user, test_team, test_team_2):
    """One-over match; ``test_team_2`` won the toss and chose to field."""
    return scoring.create_match(regular_user.id, {
        "team1Id": test_team.id,
        "team2Id": test_team_2.id,
        "tossWinnerId": test_team_2.id,
        "coinResult": "tails",
        "tossChoice": "fielding",
        "totalOvers": 1,
    })


def players_of(team):
    return sorted(team.players, key=lambda p: p.name)


# ==================== Pytest Configuration ====================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
