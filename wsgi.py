"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi run
"""

from revision_portal import create_app

app = create_app()
