"""
Gunicorn configuration for the API (``gunicorn -c gunicorn.conf.py main:app``).

Each worker process runs its own lifespan. With more than one worker, leave
AUDIT_WORKER_ENABLED off and run ``python -m apps.audit.worker`` as its own process.
"""
from pathlib import Path

from framework.config import settings

LOG_DIR = Path(settings.LOG_DIR)
LOG_DIR.mkdir(parents=True, exist_ok=True)

bind = settings.GUNICORN_BIND
workers = settings.GUNICORN_WORKERS
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 1000
max_requests_jitter = 50
timeout = 120
graceful_timeout = 30
keepalive = 5

proc_name = (settings.GUNICORN_PROC_NAME or settings.APP_NAME.lower().replace(" ", "-"))[:32]

accesslog = str(LOG_DIR / "gunicorn_access.log")
errorlog = str(LOG_DIR / "gunicorn_error.log")
loglevel = settings.LOG_LEVEL.lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

pidfile = str(LOG_DIR / "gunicorn.pid")
worker_tmp_dir = "/dev/shm"

# Loguru sinks and the Redis/SQL pools are created per worker, not in the master
preload_app = False


def when_ready(server):
    server.log.info("%s is ready. Listening on %s", settings.APP_NAME, server.address)


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def on_exit(server):
    server.log.info("%s is shutting down.", settings.APP_NAME)
