"""Tests for YAML config loading (utils/helpers.py)."""

import yaml

from utils.helpers import DEFAULT_CONFIG, deep_merge, load_config


def test_deep_merge_keeps_untouched_keys():
    merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 3}, {"a": {"y": 20}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 20}, "b": 3, "c": 4}


def test_deep_merge_does_not_mutate_base():
    base = {"a": {"x": 1}}
    deep_merge(base, {"a": {"x": 2}})
    assert base == {"a": {"x": 1}}


def test_missing_file_gives_defaults(tmp_path, monkeypatch):
    for var in ("FLASK_SECRET_KEY", "SCORECASTX_DB_URI", "GEMINI_MODEL_NAME"):
        monkeypatch.delenv(var, raising=False)
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_file_values_override_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("GEMINI_MODEL_NAME", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"commentary": {"max_words": 30}, "broadcast": {"queue_size": 5}}))
    config = load_config(str(path))
    assert config["commentary"]["max_words"] == 30
    assert config["commentary"]["temperature"] == 0.9
    assert config["broadcast"]["queue_size"] == 5
    assert config["broadcast"]["heartbeat_seconds"] == 15


def test_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(str(path))["rate_limits"] == DEFAULT_CONFIG["rate_limits"]


def test_environment_wins(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"app": {"secret_key": "from-file"}}))
    monkeypatch.setenv("FLASK_SECRET_KEY", "from-env")
    monkeypatch.setenv("SCORECASTX_DB_URI", "sqlite:///:memory:")
    monkeypatch.setenv("GEMINI_MODEL_NAME", "gemini-test")
    config = load_config(str(path))
    assert config["app"]["secret_key"] == "from-env"
    assert config["database"]["uri"] == "sqlite:///:memory:"
    assert config["commentary"]["model_name"] == "gemini-test"


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.safe_dump({"speech": {"voice": "en-GB-Neural2-B"}}))
    monkeypatch.setenv("SCORECASTX_CONFIG_PATH", str(path))
    assert load_config()["speech"]["voice"] == "en-GB-Neural2-B"
