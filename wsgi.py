"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi create-tables
    flask --app wsgi run
    gunicorn wsgi:app
"""

from app import create_app

app = create_app()
