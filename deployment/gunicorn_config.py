"""
Gunicorn Configuration for the Family Tree API
Production WSGI server settings

    gunicorn -c deployment/gunicorn_config.py
"""
import multiprocessing
import os

# Application
wsgi_app = 'app:create_app("production")'
raw_env = ['FLASK_ENV=production']

# Server Socket
bind = os.environ.get('GUNICORN_BIND', '127.0.0.1:8000')
backlog = 2048

# Worker Processes
# Sync workers: one request per worker, matching the one-session-per-request model
workers = int(os.environ.get('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1))
worker_class = 'sync'
max_requests = 1000
max_requests_jitter = 50
# Account-status emails are sent inline over SMTP (MAIL_TIMEOUT is 30s)
timeout = 90
keepalive = 5

# Logging
log_dir = os.environ.get('FAMILY_TREE_LOG_DIR', '/home/familytree/app/logs')
accesslog = os.path.join(log_dir, 'gunicorn_access.log')
errorlog = os.path.join(log_dir, 'gunicorn_error.log')
loglevel = 'info'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process Naming
proc_name = 'family-tree'

# Server Mechanics
daemon = False
pidfile = '/home/familytree/app/gunicorn.pid'
umask = 0o007

# Security
# Member images are capped by MAX_CONTENT_LENGTH; headers stay small
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def post_fork(server, worker):
    """Called after a worker has been forked"""
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def when_ready(server):
    """Called when the server is ready"""
    server.log.info("Family Tree API ready on %s", bind)


def worker_abort(worker):
    """Called when a worker times out (e.g. a stalled SMTP connection)"""
    worker.log.warning("worker received SIGABRT signal")
