"""
Gunicorn configuration for the Citas Analytics API.

Env vars that override defaults:
  PORT       TCP port to bind (Railway sets this automatically)
  WORKERS    number of worker processes (default: 2)

Each worker process holds its own read cache, so cached pattern / insight
results are not shared between workers.
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Aggregations load a full year of appointments per request; keep the
# worker count low on small containers.
workers = int(os.environ.get("WORKERS", "2"))

worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Multi-year pattern requests over several stores can take a while.
timeout = 120

loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
