"""
Gunicorn configuration.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Ledger writes are short DB transactions; sync workers are enough
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 60
keepalive = 5

# Logging
accesslog = '-'
errorlog = '-'
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'spinrewards'

# create_app() runs once in the master: tables and config are checked before forking
preload_app = True

graceful_timeout = 30


def on_starting(server):
    server.log.info('Starting Spin Rewards server...')


def on_exit(server):
    server.log.info('Spin Rewards server shutting down...')
