"""
WSGI entry point, also used by Flask-Migrate / Alembic.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi remind-stalled --days 7
"""

from studio_portal import create_app

app = create_app()
