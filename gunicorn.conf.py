"""
Gunicorn settings for the leaderboard engine.

  gunicorn -c gunicorn.conf.py leaderboard_engine.main:app

Env overrides:
  PORT     — bind port (default 8000)
  WORKERS  — worker processes (default 2)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Every worker shares the database, so raise_if_greater stays atomic across
# processes; the identity cache is per worker.
workers = int(os.environ.get("WORKERS", "2"))
worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Identity resolution is bounded at a few seconds; anything near this is stuck.
timeout = 60
graceful_timeout = 30

loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'
