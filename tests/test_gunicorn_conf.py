"""Tests for the Gunicorn settings file."""

import os
import runpy

CONF_PATH = os.path.join(os.path.dirname(__file__), "..", "gunicorn.conf.py")


def test_single_worker_with_default_threads(monkeypatch):
    monkeypatch.delenv("SCORECASTX_THREADS", raising=False)
    monkeypatch.delenv("SCORECASTX_BIND", raising=False)
    conf = runpy.run_path(CONF_PATH)
    assert conf["workers"] == 1
    assert conf["worker_class"] == "gthread"
    assert conf["threads"] == 64
    assert conf["bind"] == "127.0.0.1:5000"


def test_thread_count_from_environment(monkeypatch):
    monkeypatch.setenv("SCORECASTX_THREADS", "200")
    monkeypatch.setenv("SCORECASTX_BIND", "0.0.0.0:8000")
    conf = runpy.run_path(CONF_PATH)
    assert conf["threads"] == 200
    assert conf["bind"] == "0.0.0.0:8000"
    assert conf["workers"] == 1
