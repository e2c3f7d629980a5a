import multiprocessing
import os

# Server socket
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"
backlog = 2048

# Worker processes
# Each worker runs its own sync scheduler; sync leases keep them from overlapping
workers = min(multiprocessing.cpu_count() + 1, 2)
worker_class = "uvicorn.workers.UvicornWorker"

# Timeouts
timeout = 120  # Increased for long-running async operations
keepalive = 5
graceful_timeout = 30  # Time to wait for workers to finish on shutdown

# Logging
accesslog = "-"  # stdout
errorlog = "-"   # stderr
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(L)s'

# Process naming
proc_name = "unified-calendar-api"

# Worker lifecycle
max_requests = 1000  # Restart workers after this many requests
max_requests_jitter = 50  # Add randomness to max_requests

# Each worker needs its own event loop for the Motor client and scheduler
preload_app = False

# Server hooks
def on_starting(server):
    """Log when the server is starting"""
    server.log.info("Starting unified-calendar-api server")

def on_exit(server):
    """Log when the server is exiting"""
    server.log.info("Stopping unified-calendar-api server") 