"""
The gunicorn config module: env overrides and the app it serves.
"""
import runpy
from pathlib import Path

CONF = Path(__file__).resolve().parents[1] / "gunicorn.conf.py"


def test_defaults(monkeypatch):
    for name in ("PORT", "WORKERS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    conf = runpy.run_path(str(CONF))
    assert conf["wsgi_app"] == "levelup.main:app"
    assert conf["bind"] == "0.0.0.0:8000"
    assert conf["workers"] == 2
    assert conf["worker_class"] == "uvicorn.workers.UvicornWorker"
    assert conf["loglevel"] == "info"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "9100")
    monkeypatch.setenv("WORKERS", "4")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    conf = runpy.run_path(str(CONF))
    assert conf["bind"] == "0.0.0.0:9100"
    assert conf["workers"] == 4
    assert conf["loglevel"] == "debug"
