"""
Revision Portal
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from revision_portal.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_EVENT_TYPES = {
    "modification.submitted",
    "modification.approved",
    "modification.rejected",
    "modification.completed",
    "clarification.requested",
    "clarification.answered",
    "work.started",
    "work.updated",
    "work.completed",
    "ledger.deducted",
    "ledger.restored",
    "ledger.exhausted",
    "revision.advanced",
}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    recipient = db.Column(db.String(150), nullable=False, index=True)
    event_type = db.Column(db.String(40), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), default="info")

    # Link to source entity
    entity_type = db.Column(db.String(30), default="", comment="modification_request/project/...")
    entity_id = db.Column(db.Integer, nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "recipient": self.recipient,
            "event_type": self.event_type,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.event_type} → {self.recipient}>"
