"""
Revision Portal
Project & revision-budget blueprint.

Endpoint groups:
  Projects            GET/POST /api/v1/projects
                      GET      /api/v1/projects/<pid>
  Budget read model   GET      /api/v1/projects/<pid>/modification-tracker
                      GET      /api/v1/projects/<pid>/modification-cost?urgency=
  Request overview    GET      /api/v1/projects/<pid>/modification-statistics
                      GET      /api/v1/projects/<pid>/available-feedback?report_id=
                      GET      /api/v1/projects/<pid>/modification-history

Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from revision_portal.blueprints import paginate_query
from revision_portal.models.modification import URGENCY_LEVELS
from revision_portal.services import modification_ledger as ledger
from revision_portal.services import modification_service as mods
from revision_portal.services import project_service
from revision_portal.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    """List projects, optionally filtered by ?client_id= / ?designer_id=."""
    query = project_service.projects_query(
        client_id=request.args.get("client_id"),
        designer_id=request.args.get("designer_id"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [p.to_dict() for p in items], "total": total})


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Create a project.

    Body: {name, description?, client_id?, designer_id?,
           total_modification_count?, additional_modification_fee?}
    """
    data = request.get_json(silent=True) or {}
    if not str(data.get("name", "") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    project = project_service.create_project(data)
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:pid>", methods=["GET"])
def get_project(pid):
    return jsonify(project_service.get_project(pid).to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Budget
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<int:pid>/modification-tracker", methods=["GET"])
def get_modification_tracker(pid):
    return jsonify(ledger.compute_tracker(pid).to_dict())


@project_bp.route("/projects/<int:pid>/modification-cost", methods=["GET"])
def get_modification_cost(pid):
    """Preview whether a request filed now would be billed."""
    urgency = request.args.get("urgency", "normal")
    if urgency not in URGENCY_LEVELS:
        return api_error(
            E.VALIDATION_INVALID,
            f"urgency must be one of {sorted(URGENCY_LEVELS)}",
            status=400,
        )
    return jsonify(ledger.calculate_additional_cost(pid, urgency))


# ═════════════════════════════════════════════════════════════════════════
# Request overview
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<int:pid>/modification-statistics", methods=["GET"])
def get_modification_statistics(pid):
    return jsonify(mods.get_modification_statistics(pid))


@project_bp.route("/projects/<int:pid>/available-feedback", methods=["GET"])
def get_available_feedback(pid):
    items = mods.get_available_feedback(pid, request.args.get("report_id"))
    return jsonify({"items": [f.to_dict() for f in items], "total": len(items)})


@project_bp.route("/projects/<int:pid>/modification-history", methods=["GET"])
def get_modification_history(pid):
    rows = mods.list_modification_history(pid)
    return jsonify({"items": [h.to_dict() for h in rows], "total": len(rows)})
