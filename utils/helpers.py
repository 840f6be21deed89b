import copy
import logging
import os

import yaml

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "app": {
        "secret_key": None,
        "debug": False,
    },
    "database": {
        "uri": f"sqlite:///{os.path.join(PROJECT_ROOT, 'data', 'scorecastx.db')}",
    },
    "commentary": {
        "enabled": True,
        "model_name": None,
        "max_output_tokens": 120,
        "temperature": 0.9,
        "max_words": 50,
        "timeout_ms": 10000,
        "max_workers": 4,
        "auto_audio": False,
        "synchronous": False,
    },
    "speech": {
        "enabled": True,
        "voice": "en-US-Neural2-J",
        "language_code": "en-US",
        "audio_dir": os.path.join(PROJECT_ROOT, "public", "audio"),
        "audio_url_prefix": "/audio",
    },
    "broadcast": {
        "heartbeat_seconds": 15,
        "sweep_seconds": 30,
        "queue_size": 100,
        "background_loops": True,
    },
    "rate_limits": {
        "default": "300 per minute",
        "scoring": "120 per minute",
        "auth": "10 per minute",
    },
}


def deep_merge(base, override):
    """Return ``base`` with ``override`` merged in; nested dicts merge key by key."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config_path():
    return os.getenv("SCORECASTX_CONFIG_PATH") or os.path.join(PROJECT_ROOT, "config", "config.yaml")


def load_config(path=None):
    config_path = path or get_config_path()
    loaded = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    else:
        logger.warning(f"Config file not found at {config_path}, using defaults")

    config = deep_merge(DEFAULT_CONFIG, loaded)

    # Environment wins over the file
    if os.getenv("FLASK_SECRET_KEY"):
        config["app"]["secret_key"] = os.getenv("FLASK_SECRET_KEY")
    if os.getenv("SCORECASTX_DB_URI"):
        config["database"]["uri"] = os.getenv("SCORECASTX_DB_URI")
    if os.getenv("GEMINI_MODEL_NAME"):
        config["commentary"]["model_name"] = os.getenv("GEMINI_MODEL_NAME")
    return config
