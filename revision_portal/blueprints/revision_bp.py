"""
Revision Portal
Revision surface & archive blueprint.

Endpoint groups:
  Active surface   GET  /api/v1/projects/<pid>/revision-surface
                   POST /api/v1/projects/<pid>/feedback
                   POST /api/v1/projects/<pid>/markups
                   POST /api/v1/markups/<mid>/feedback
                   POST /api/v1/projects/<pid>/checklist
                   POST /api/v1/projects/<pid>/checklist/<cid>/complete
  Revision cycle   POST /api/v1/projects/<pid>/revisions/advance
                   GET  /api/v1/projects/<pid>/revisions
                   GET  /api/v1/projects/<pid>/revisions/<n>
"""

import logging

from flask import Blueprint, jsonify, request

from revision_portal.blueprints import current_user
from revision_portal.services import revision_archive, revision_surface
from revision_portal.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

revision_bp = Blueprint("revision_bp", __name__, url_prefix="/api/v1")
register_error_handlers(revision_bp)


# ── Active surface ───────────────────────────────────────────────────────────


@revision_bp.route("/projects/<int:pid>/revision-surface", methods=["GET"])
def get_revision_surface(pid):
    return jsonify(revision_surface.get_revision_surface(pid))


@revision_bp.route("/projects/<int:pid>/feedback", methods=["POST"])
def add_feedback(pid):
    """Body: {content, priority?, category?, report_id?}"""
    data = request.get_json(silent=True) or {}
    if not str(data.get("content") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "content is required")
    feedback = revision_surface.add_feedback(pid, data, current_user())
    return jsonify(feedback.to_dict()), 201


@revision_bp.route("/projects/<int:pid>/markups", methods=["POST"])
def add_markup(pid):
    """Body: {x, y, markup_type?, version_ref?, color?}"""
    data = request.get_json(silent=True) or {}
    if data.get("x") is None or data.get("y") is None:
        return api_error(E.VALIDATION_REQUIRED, "x and y are required")
    markup = revision_surface.add_markup(pid, data, current_user())
    return jsonify(markup.to_dict()), 201


@revision_bp.route("/markups/<int:mid>/feedback", methods=["POST"])
def add_markup_feedback(mid):
    """Body: {title, description?, category?, priority?}"""
    data = request.get_json(silent=True) or {}
    if not str(data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    mf = revision_surface.add_markup_feedback(mid, data, current_user())
    return jsonify(mf.to_dict()), 201


@revision_bp.route("/projects/<int:pid>/checklist", methods=["POST"])
def add_checklist_entry(pid):
    """Body: {content}"""
    data = request.get_json(silent=True) or {}
    if not str(data.get("content") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "content is required")
    entry = revision_surface.add_checklist_entry(pid, data, current_user())
    return jsonify(entry.to_dict()), 201


@revision_bp.route("/projects/<int:pid>/checklist/<int:cid>/complete", methods=["POST"])
def complete_checklist_entry(pid, cid):
    """Body: {completed?: bool}  (default true; false reopens the entry)"""
    data = request.get_json(silent=True) or {}
    entry = revision_surface.set_checklist_entry_completed(pid, cid, bool(data.get("completed", True)))
    return jsonify(entry.to_dict())


# ── Revision cycle ───────────────────────────────────────────────────────────


@revision_bp.route("/projects/<int:pid>/revisions/advance", methods=["POST"])
def advance_revision(pid):
    result = revision_archive.approve_and_advance_revision(pid, current_user())
    return jsonify({
        "archive": result["archive"].to_dict(),
        "header": result["header"].to_dict(),
        "project": result["project"].to_dict(),
    }), 201


@revision_bp.route("/projects/<int:pid>/revisions", methods=["GET"])
def list_revisions(pid):
    items = revision_archive.list_revision_archives(pid)
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@revision_bp.route("/projects/<int:pid>/revisions/<int:number>", methods=["GET"])
def get_revision(pid, number):
    return jsonify(revision_archive.get_revision_archive(pid, number).to_dict())
