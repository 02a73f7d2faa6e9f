"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi run-orchestrator --limit 10
"""

from signal_engine import create_app

app = create_app()
