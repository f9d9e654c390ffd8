# backend/gunicorn_conf.py

# Gunicorn config file

# Basic configuration
bind = "0.0.0.0:10000"
# Exactly one worker: the order cache and the job guards live in-process,
# and several workers would each post the same pending orders.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "orderbot.main:app"

# Settings for running behind a reverse proxy
forwarded_allow_ips = "*"

# --- Logging ---
# Send access and error logs to stdout and stderr
accesslog = "-"
errorlog = "-"
# Set the log level
loglevel = "info"

# Give in-flight interactions and the final cache flush time to finish
graceful_timeout = 30
