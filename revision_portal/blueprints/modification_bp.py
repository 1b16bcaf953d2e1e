"""
Revision Portal
Modification request & clarification blueprint.

Endpoint groups:
  Requests         GET/POST /api/v1/projects/<pid>/modification-requests
                   GET      /api/v1/modification-requests/<rid>
  Transitions      POST     /api/v1/modification-requests/<rid>/approve
                   POST     /api/v1/modification-requests/<rid>/reject
                   POST     /api/v1/modification-requests/<rid>/complete
  Clarifications   GET/POST /api/v1/modification-requests/<rid>/clarifications
                   POST     /api/v1/modification-requests/<rid>/clarifications/reconcile
                   POST     /api/v1/clarifications/<cid>/respond
                   POST     /api/v1/clarifications/<cid>/resolve

The acting user is taken from the X-User header.
"""

import logging

from flask import Blueprint, jsonify, request

from revision_portal.blueprints import current_user
from revision_portal.services import clarification_service as clarifications
from revision_portal.services import modification_service as mods
from revision_portal.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

modification_bp = Blueprint("modification_bp", __name__, url_prefix="/api/v1")
register_error_handlers(modification_bp)


def _request_payload(mr):
    payload = mr.to_dict(include_children=True)
    payload["available_actions"] = mods.get_available_actions(mr)
    return payload


# ═════════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════════


@modification_bp.route("/projects/<int:pid>/modification-requests", methods=["GET"])
def list_modification_requests(pid):
    """List a project's requests in request-number order (?status= filter)."""
    items = mods.list_modification_requests(pid, request.args.get("status"))
    return jsonify({"items": [r.to_dict() for r in items], "total": len(items)})


@modification_bp.route("/projects/<int:pid>/modification-requests", methods=["POST"])
def create_modification_request(pid):
    """File a request.

    Body: {feedback_ids: [...], description?, urgency?, estimated_completion_date?,
           notes?, requested_by?}
    """
    data = request.get_json(silent=True) or {}
    if "feedback_ids" in data and not isinstance(data["feedback_ids"], list):
        return api_error(E.VALIDATION_INVALID, "feedback_ids must be a list", status=400)
    requested_by = data.get("requested_by") or current_user()
    mr = mods.create_modification_request(pid, data, requested_by)
    return jsonify(_request_payload(mr)), 201


@modification_bp.route("/modification-requests/<int:rid>", methods=["GET"])
def get_modification_request(rid):
    return jsonify(_request_payload(mods.get_modification_request(rid)))


@modification_bp.route("/modification-requests/<int:rid>/approve", methods=["POST"])
def approve_modification_request(rid):
    data = request.get_json(silent=True) or {}
    mr = mods.approve_modification_request(rid, current_user(), notes=data.get("notes"))
    return jsonify(_request_payload(mr))


@modification_bp.route("/modification-requests/<int:rid>/reject", methods=["POST"])
def reject_modification_request(rid):
    """Body: {rejection_reason}"""
    data = request.get_json(silent=True) or {}
    reason = str(data.get("rejection_reason") or data.get("reason") or "").strip()
    if not reason:
        return api_error(E.VALIDATION_REQUIRED, "rejection_reason is required")
    mr = mods.reject_modification_request(rid, reason, current_user())
    return jsonify(_request_payload(mr))


@modification_bp.route("/modification-requests/<int:rid>/complete", methods=["POST"])
def complete_modification_request(rid):
    """Body: {actual_completion_date?, notes?}"""
    data = request.get_json(silent=True) or {}
    mr = mods.complete_modification_request(
        rid, current_user(),
        actual_completion_date=data.get("actual_completion_date"),
        notes=data.get("notes"),
    )
    return jsonify(_request_payload(mr))


# ═════════════════════════════════════════════════════════════════════════
# Clarifications
# ═════════════════════════════════════════════════════════════════════════


@modification_bp.route("/modification-requests/<int:rid>/clarifications", methods=["GET"])
def list_clarifications(rid):
    items = clarifications.list_clarifications(rid)
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)})


@modification_bp.route("/modification-requests/<int:rid>/clarifications", methods=["POST"])
def request_clarifications(rid):
    """Raise questions on a pending request.

    Body: {feedback_id?, question} or {items: [{feedback_id?, question}, ...]}
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if items is None:
        if not str(data.get("question") or "").strip():
            return api_error(E.VALIDATION_REQUIRED, "question is required")
        items = [{"feedback_id": data.get("feedback_id"), "question": data["question"]}]
    elif not isinstance(items, list):
        return api_error(E.VALIDATION_INVALID, "items must be a list", status=400)
    created = clarifications.request_clarifications(rid, items, current_user())
    return jsonify({"items": [c.to_dict() for c in created], "total": len(created)}), 201


@modification_bp.route("/modification-requests/<int:rid>/clarifications/reconcile", methods=["POST"])
def reconcile_clarifications(rid):
    mr = clarifications.reconcile_clarifications(rid, current_user())
    return jsonify(_request_payload(mr))


@modification_bp.route("/clarifications/<int:cid>/respond", methods=["POST"])
def respond_to_clarification(cid):
    """Body: {response}"""
    data = request.get_json(silent=True) or {}
    response = str(data.get("response") or "").strip()
    if not response:
        return api_error(E.VALIDATION_REQUIRED, "response is required")
    clar = clarifications.respond_to_clarification(cid, response, current_user())
    return jsonify(clar.to_dict())


@modification_bp.route("/clarifications/<int:cid>/resolve", methods=["POST"])
def resolve_clarification(cid):
    clar = clarifications.resolve_clarification(cid, current_user())
    return jsonify(clar.to_dict())
