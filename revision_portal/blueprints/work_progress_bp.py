"""
Revision Portal
Work-progress blueprint.

Endpoints:
  GET/POST /api/v1/modification-requests/<rid>/work-progress
  PATCH    /api/v1/modification-requests/<rid>/work-progress/items/<iid>
  POST     /api/v1/modification-requests/<rid>/work-progress/items/<iid>/attachments
"""

import logging

from flask import Blueprint, jsonify, request

from revision_portal.blueprints import current_user
from revision_portal.services import work_progress_service as work
from revision_portal.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

work_progress_bp = Blueprint("work_progress_bp", __name__, url_prefix="/api/v1")
register_error_handlers(work_progress_bp)


@work_progress_bp.route("/modification-requests/<int:rid>/work-progress", methods=["GET"])
def get_work_progress(rid):
    return jsonify(work.get_work_progress(rid).to_dict())


@work_progress_bp.route("/modification-requests/<int:rid>/work-progress", methods=["POST"])
def create_work_progress(rid):
    """Start work on an approved request.

    Body: {checklist_items: [{title, description?, category?, priority?,
           estimated_hours?, assigned_to?, dependencies?}], estimated_completion?}
    """
    data = request.get_json(silent=True) or {}
    items = data.get("checklist_items")
    if not isinstance(items, list):
        return api_error(E.VALIDATION_REQUIRED, "checklist_items must be a list")
    wp = work.create_work_progress(
        rid, items,
        estimated_completion=data.get("estimated_completion"),
        created_by=current_user(),
    )
    return jsonify(wp.to_dict()), 201


@work_progress_bp.route("/modification-requests/<int:rid>/work-progress/items/<int:iid>", methods=["PATCH"])
def update_checklist_item(rid, iid):
    """Partial update: title, description, category, priority, estimated_hours,
    assigned_to, status, progress_percentage."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a non-empty object")
    wp = work.update_checklist_item(rid, iid, data, current_user())
    return jsonify(wp.to_dict())


@work_progress_bp.route(
    "/modification-requests/<int:rid>/work-progress/items/<int:iid>/attachments", methods=["POST"],
)
def add_attachment(rid, iid):
    """Body: {file_name, file_url, file_type?, file_size?}"""
    data = request.get_json(silent=True) or {}
    attachment = work.add_attachment(rid, iid, data, current_user())
    return jsonify(attachment.to_dict()), 201
