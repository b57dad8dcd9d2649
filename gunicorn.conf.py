"""
Gunicorn configuration for the LevelUp API.

Env vars that override defaults:
  PORT     — TCP port to bind (Railway / Render set it)
  WORKERS  — number of worker processes (default: 2)
  LOG_LEVEL — gunicorn log level (default: info)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"
wsgi_app = "levelup.main:app"

# Workers share only the database. Each one keeps its own snapshot cache;
# award / revoke commit with a compare-and-swap on progression_states.version
# read at the start of the operation, so a worker that lost a race rolls
# back, and snapshot reads reload whenever that version has moved.
workers = int(os.environ.get("WORKERS", "2"))
worker_class = "uvicorn.workers.UvicornWorker"

# Sync endpoints run in each worker's threadpool; a commit has no internal
# timeout, so the worker timeout is the upper bound on a stuck request.
timeout = 60
graceful_timeout = 30
keepalive = 5

loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'
