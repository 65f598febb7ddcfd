"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi init-jobs
    flask --app wsgi run-job insight_generation
    flask --app wsgi db upgrade     # Flask-Migrate, once migrations/ exists
"""

from phaseplan import create_app

app = create_app()
