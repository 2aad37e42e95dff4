"""
Gunicorn configuration file for production deployment.

    gunicorn -c eventcam/gunicorn_config.py eventcam.app:app

Display sessions (the three rotating playlists of every connected screen)
live in process memory, so a single worker process serves all requests and
concurrency comes from its thread pool.
"""

import os

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '8080')}"
backlog = 2048

# Worker processes
workers = 1
worker_class = 'gthread'
# Can be overridden with GUNICORN_THREADS environment variable
threads = int(os.environ.get('GUNICORN_THREADS', '8'))
timeout = 30
keepalive = 2

# Graceful shutdown
graceful_timeout = 30
# No max_requests: recycling the worker would drop every live display session

# Logging
accesslog = '-'  # Log to stdout
errorlog = '-'   # Log to stdout
loglevel = 'warning'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = 'eventcam-gunicorn'

# Server mechanics
daemon = False
pidfile = None
umask = 0
user = None
group = None
tmp_upload_dir = None


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info("Starting eventcam slideshow server")


def when_ready(server):
    """Called just after the server is started."""
    server.log.info("eventcam slideshow server is ready. Listening on: %s", bind)


def on_exit(server):
    """Called just before exiting Gunicorn."""
    server.log.info("Shutting down eventcam slideshow server")


def worker_int(worker):
    """Called when a worker receives the SIGINT or SIGQUIT signal."""
    worker.log.info("Worker received INT or QUIT signal")
