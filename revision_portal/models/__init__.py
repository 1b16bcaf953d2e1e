"""
Revision Portal
SQLAlchemy extension instance shared by every model module.

Usage:
    from revision_portal.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
