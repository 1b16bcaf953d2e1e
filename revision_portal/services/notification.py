"""
Revision Portal
Workflow notification port and in-app sink.

The lifecycle services only decide *which* event fires and *who* should hear
about it.  Delivery is delegated to a ``WorkflowNotifier`` installed on the
Flask app (``create_app(notifier=...)``); the default ``InAppNotifier`` writes
Notification rows through ``NotificationService``.

Events are collected while a transition runs and handed to the notifier only
after the transition has been committed:

    events = []
    ...mutate, append WorkflowEvent(...)...
    db.session.commit()
    dispatch_events(events)

A failing sink is logged at WARNING and never reaches the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import Flask, current_app

from revision_portal.models import db
from revision_portal.models.notification import Notification

logger = logging.getLogger(__name__)


# ── Recipient policy ─────────────────────────────────────────────────────────

_DESIGNER = ("designer",)
_CLIENT = ("client",)
_BOTH = ("client", "designer")

EVENT_RECIPIENTS = {
    "modification.submitted":  _DESIGNER,
    "clarification.answered":  _DESIGNER,
    "modification.approved":   _CLIENT,
    "modification.rejected":   _CLIENT,
    "clarification.requested": _CLIENT,
    "work.started":            _CLIENT,
    "work.updated":            _CLIENT,
    "work.completed":          _CLIENT,
    "ledger.deducted":         _CLIENT,
    "ledger.restored":         _CLIENT,
    "ledger.exhausted":        _CLIENT,
    "modification.completed":  _BOTH,
    "revision.advanced":       _BOTH,
}


def recipients_for(event_type: str, project) -> list[str]:
    """Resolve the recipient roles of an event to the project's user ids."""
    ids = []
    for role in EVENT_RECIPIENTS.get(event_type, ()):
        user_id = project.client_id if role == "client" else project.designer_id
        if user_id and user_id not in ids:
            ids.append(user_id)
    return ids


@dataclass
class WorkflowEvent:
    """One lifecycle event awaiting dispatch."""
    event_type: str
    project_id: int
    recipients: list[str]
    title: str
    message: str = ""
    severity: str = "info"
    entity_type: str = ""
    entity_id: int | None = None
    payload: dict = field(default_factory=dict)

    def context(self) -> dict:
        return {
            "project_id": self.project_id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            **self.payload,
        }


def make_event(event_type, project, *, title, message="", severity="info",
               entity_type="", entity_id=None, **payload) -> WorkflowEvent:
    return WorkflowEvent(
        event_type=event_type,
        project_id=project.id,
        recipients=recipients_for(event_type, project),
        title=title,
        message=message,
        severity=severity,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=payload,
    )


# ── Notifier port ────────────────────────────────────────────────────────────


class WorkflowNotifier:
    """Notification port. Subclasses deliver one event to one recipient."""

    def emit(self, event_type: str, recipient: str, project_context: dict) -> None:
        raise NotImplementedError

    def init_app(self, app: Flask) -> None:
        app.extensions["workflow_notifier"] = self


class InAppNotifier(WorkflowNotifier):
    """Default sink: one Notification row per recipient per event."""

    def emit(self, event_type, recipient, project_context):
        NotificationService.create(
            event_type=event_type,
            recipient=recipient,
            project_id=project_context.get("project_id"),
            title=project_context.get("title") or event_type,
            message=project_context.get("message", ""),
            severity=project_context.get("severity", "info"),
            entity_type=project_context.get("entity_type", ""),
            entity_id=project_context.get("entity_id"),
        )


def get_notifier() -> WorkflowNotifier:
    notifier = current_app.extensions.get("workflow_notifier")
    if notifier is None:
        notifier = InAppNotifier()
        notifier.init_app(current_app)
    return notifier


def dispatch_events(events: list[WorkflowEvent]) -> int:
    """
    Hand committed events to the installed notifier.

    Returns the number of successful deliveries.  Delivery failures are logged
    and discarded; the transition that produced the events stays committed.
    """
    if not events:
        return 0
    notifier = get_notifier()
    delivered = 0
    for event in events:
        if not event.recipients:
            logger.debug(
                "No recipient for %s on project %s", event.event_type, event.project_id,
            )
            continue
        for recipient in event.recipients:
            try:
                notifier.emit(event.event_type, recipient, event.context())
                delivered += 1
            except Exception:
                db.session.rollback()
                logger.warning(
                    "Notification %s to %s failed, transition unaffected",
                    event.event_type, recipient,
                    exc_info=True,
                    extra={"project_id": event.project_id},
                )
    return delivered


# ── In-app notification store ────────────────────────────────────────────────


class NotificationService:
    """Stateless service class for notification operations."""

    @staticmethod
    def create(*, event_type, recipient, title, message="", severity="info",
               project_id=None, entity_type="", entity_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            project_id=project_id,
            recipient=recipient,
            event_type=event_type,
            title=title,
            message=message,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def list_for_recipient(recipient, project_id=None, unread_only=False,
                           limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        q = Notification.query.filter_by(recipient=recipient)
        if project_id:
            q = q.filter_by(project_id=project_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient, project_id=None):
        """Return count of unread notifications."""
        q = Notification.query.filter_by(recipient=recipient, is_read=False)
        if project_id:
            q = q.filter_by(project_id=project_id)
        return q.count()

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient, project_id=None):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(recipient=recipient, is_read=False)
        if project_id:
            q = q.filter_by(project_id=project_id)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count
