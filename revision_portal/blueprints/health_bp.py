"""
Health probes.

    GET /api/v1/health/ready   process is up (no dependencies touched)
    GET /api/v1/health         database round-trip and notifier wiring;
                               503 when any check fails
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from revision_portal.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _check_database():
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _check_notifier():
    notifier = current_app.extensions.get("workflow_notifier")
    if notifier is None:
        return {"status": "error", "detail": "no workflow notifier installed"}
    return {"status": "ok", "sink": type(notifier).__name__}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("", methods=["GET"])
def live():
    checks = {"database": _check_database(), "notifier": _check_notifier()}
    healthy = all(c["status"] == "ok" for c in checks.values())
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), 200 if healthy else 503
