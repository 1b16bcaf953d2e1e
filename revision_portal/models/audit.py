"""
Revision Portal
Lifecycle audit trail.

Every budget mutation and state transition leaves one AuditEntry.  Rows are
flushed inside the caller's transaction, so an entry exists exactly when the
change it describes was committed.

    write_audit(entity_type="modification_request", entity_id=mr.id,
                action="modification_request.approve", actor=user,
                project_id=mr.project_id,
                diff={"status": {"old": "pending", "new": "approved"}})
"""

from datetime import datetime, timezone

from flask import g, has_request_context
from sqlalchemy import select

from revision_portal.models import db

AUDITED_ENTITIES = {
    "project",
    "modification_request",
    "clarification_request",
    "work_progress",
    "work_checklist_item",
    "revision",
}


class AuditEntry(db.Model):
    """One lifecycle change; ``changes`` maps field → {"old", "new"}."""

    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_subject", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(60), nullable=False, index=True)
    actor = db.Column(db.String(150), nullable=False, default="system")
    changes = db.Column(db.JSON, nullable=False, default=dict)
    request_id = db.Column(db.String(64), nullable=True, comment="X-Request-ID of the HTTP call")
    occurred_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def diff(self) -> dict:
        return dict(self.changes or {})

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity": f"{self.entity_type}/{self.entity_id}",
            "action": self.action,
            "actor": self.actor,
            "changes": self.diff,
            "request_id": self.request_id,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
        }

    def __repr__(self):
        return f"<AuditEntry {self.action} {self.entity_type}/{self.entity_id}>"


def write_audit(*, entity_type, entity_id, action, actor=None, project_id=None, diff=None) -> AuditEntry:
    """Flush one audit row in the current transaction; the caller commits."""
    if entity_type not in AUDITED_ENTITIES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")
    entry = AuditEntry(
        project_id=project_id,
        entity_type=entity_type,
        entity_id=int(entity_id),
        action=action,
        actor=actor or "system",
        changes={
            field: {"old": _plain(values.get("old")), "new": _plain(values.get("new"))}
            for field, values in (diff or {}).items()
        },
        request_id=getattr(g, "request_id", None) if has_request_context() else None,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _plain(value):
    # JSON column: dates and decimals are stored as strings
    if value is None or isinstance(value, (bool, int, float, str, list, dict)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def audit_trail(entity_type: str, entity_id: int) -> list[AuditEntry]:
    """Entries for one entity, oldest first."""
    return list(db.session.execute(
        select(AuditEntry)
        .where(AuditEntry.entity_type == entity_type, AuditEntry.entity_id == entity_id)
        .order_by(AuditEntry.occurred_at, AuditEntry.id)
    ).scalars())
