"""
Revision Portal
Notification blueprint.

Provides read/acknowledge access to the in-app notifications written by the
default workflow notifier.

Endpoints:
  GET  /api/v1/notifications?recipient=&project_id=&unread_only=
  GET  /api/v1/notifications/unread-count?recipient=
  POST /api/v1/notifications/<nid>/read
  POST /api/v1/notifications/read-all
"""

import logging

from flask import Blueprint, jsonify, request

from revision_portal.blueprints import current_user, page_params
from revision_portal.core.exceptions import NotFoundError
from revision_portal.services.notification import NotificationService
from revision_portal.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


def _recipient():
    return request.args.get("recipient") or current_user()


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """List notifications for a recipient, newest first."""
    limit, offset = page_params(default_limit=50, max_limit=200)
    items, total = NotificationService.list_for_recipient(
        _recipient(),
        project_id=request.args.get("project_id", type=int),
        unread_only=request.args.get("unread_only", "").lower() in ("1", "true", "yes"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    recipient = _recipient()
    return jsonify({"recipient": recipient, "unread": NotificationService.unread_count(recipient)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
def mark_read(nid):
    notif = NotificationService.mark_read(nid)
    if not notif:
        raise NotFoundError("Notification", nid)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(_recipient(), request.args.get("project_id", type=int))
    return jsonify({"marked_read": count})
