"""
Revision Portal
Flask application factory.

    from revision_portal import create_app

    app = create_app()                                   # APP_ENV or "development"
    app = create_app("testing", notifier=my_notifier)    # custom notification sink

The notifier receives every lifecycle event after the transition that raised
it has been committed; by default events become in-app Notification rows.
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from revision_portal.config import config
from revision_portal.middleware.logging_config import configure_logging
from revision_portal.middleware.rate_limiter import init_rate_limits
from revision_portal.middleware.timing import init_request_timing
from revision_portal.models import db
from revision_portal.services.notification import InAppNotifier

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(key_func=get_remote_address, default_limits=[])


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # ON DELETE CASCADE on the child tables needs this under SQLite
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None, notifier=None):
    """
    Build the application.

    Args:
        config_name: "development", "testing" or "production"; defaults to
                     the APP_ENV env var.
        notifier: WorkflowNotifier for lifecycle events; InAppNotifier if None.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name or os.getenv("APP_ENV", "development")]())
    app.config.setdefault("RATELIMIT_STORAGE_URI", app.config.get("REDIS_URL") or "memory://")
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    _init_extensions(app)
    (notifier or InAppNotifier()).init_app(app)
    init_request_timing(app)

    with app.app_context():
        _create_schema()

    _register_blueprints(app)
    _register_app_errors(app)
    init_rate_limits(app, limiter)
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS") or "*"
    if origins == "*":
        CORS(app)
    else:
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])


def _create_schema():
    # every model module must be imported before create_all / autogenerate
    from revision_portal.models import audit, modification, notification, project, revision  # noqa: F401

    try:
        db.create_all()
    except Exception as exc:
        logger.warning("db.create_all() failed, run `flask db upgrade`: %s", exc)


def _register_blueprints(app):
    from revision_portal.blueprints.health_bp import health_bp
    from revision_portal.blueprints.modification_bp import modification_bp
    from revision_portal.blueprints.notification_bp import notification_bp
    from revision_portal.blueprints.project_bp import project_bp
    from revision_portal.blueprints.revision_bp import revision_bp
    from revision_portal.blueprints.work_progress_bp import work_progress_bp

    for bp in (health_bp, project_bp, modification_bp, work_progress_bp, revision_bp, notification_bp):
        app.register_blueprint(bp)


def _register_app_errors(app):
    """JSON bodies for errors raised outside any blueprint (routing, limits)."""

    @app.errorhandler(404)
    def _not_found(_error):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(_error):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _rate_limited(error):
        return {"error": "Too many requests", "retry_after": error.description}, 429
