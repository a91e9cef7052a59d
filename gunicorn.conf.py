# Gunicorn configuration for production
# Local development runs `uvicorn school_portal.main:app --reload` instead

import os

bind = os.getenv("BIND", "0.0.0.0:8000")

# One worker: countdown timers, submit locks, the query cache and the
# realtime hub all live in process memory. Timers are re-armed from the
# database when the worker starts.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000

# Uploads go through the app to storage; websocket clients send heartbeats
timeout = 120
keepalive = 5
graceful_timeout = 30

proc_name = "school-portal-backend"

loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)s'

# Startup expiry sweep and timer re-arming must run inside the worker
preload_app = False
daemon = False

limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def on_starting(server):
    server.log.info("Starting School Portal Backend with Gunicorn")


def post_worker_init(worker):
    worker.log.info("Worker %s ready", worker.pid)


def worker_abort(worker):
    # In-progress countdowns are recovered on the next startup
    worker.log.warning("Worker %s aborted", worker.pid)
