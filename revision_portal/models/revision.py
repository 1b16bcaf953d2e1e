"""
Revision Portal
Revision surface & archive models.

Models:
    - Feedback:               general client feedback entry
    - ImageMarkup:            numbered annotation pin on a design version
    - MarkupFeedback:         feedback attached to a markup pin
    - RevisionChecklistItem:  active checklist entry (or revision header) for the current round
    - RevisionArchive:        immutable snapshot of one closed revision round

The "active surface" of a project is every Feedback / ImageMarkup /
MarkupFeedback / RevisionChecklistItem row with ``archived_at IS NULL``.
Advancing a revision stamps ``archived_at`` on all of them and writes one
RevisionArchive row; archived rows are never reactivated.
"""

from datetime import datetime, timezone

from revision_portal.models import db


# ── Constants ────────────────────────────────────────────────────────────────

FEEDBACK_PRIORITIES = {"low", "medium", "high", "critical"}

FEEDBACK_CATEGORIES = {"design", "content", "functionality", "technical", "other"}

FEEDBACK_STATUSES = {"pending", "acknowledged", "in_progress", "resolved", "rejected"}

MARKUP_TYPES = {"point", "area", "arrow", "text"}

CHECKLIST_ENTRY_TYPES = {"general", "markup", "manual"}


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. Feedback
# ═════════════════════════════════════════════════════════════════════════════


class Feedback(db.Model):
    """General (non-markup) feedback accumulated against the current revision."""

    __tablename__ = "feedback"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    report_id = db.Column(db.String(64), nullable=True)
    content = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(20), nullable=False, default="medium")
    category = db.Column(db.String(20), nullable=False, default="design")
    status = db.Column(db.String(20), nullable=False, default="pending")
    comments = db.Column(db.JSON, default=list)
    created_by = db.Column(db.String(100), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    revision_number = db.Column(db.Integer, nullable=False, default=1)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "report_id": self.report_id,
            "content": self.content,
            "priority": self.priority,
            "category": self.category,
            "status": self.status,
            "comments": list(self.comments or []),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "revision_number": self.revision_number,
            "archived_at": _iso(self.archived_at),
        }

    def __repr__(self):
        return f"<Feedback {self.id}: {self.content[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ImageMarkup
# ═════════════════════════════════════════════════════════════════════════════


class ImageMarkup(db.Model):
    """
    Annotation pin placed on a design version.
    ``number`` is sequential per project within a revision round.
    """

    __tablename__ = "image_markups"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version_ref = db.Column(db.String(64), nullable=True, comment="Design version the pin is placed on")
    x = db.Column(db.Float, nullable=False)
    y = db.Column(db.Float, nullable=False)
    markup_type = db.Column(db.String(20), nullable=False, default="point")
    number = db.Column(db.Integer, nullable=False)
    color = db.Column(db.String(20), default="#ef4444")
    created_by = db.Column(db.String(100), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    revision_number = db.Column(db.Integer, nullable=False, default=1)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    feedback = db.relationship(
        "MarkupFeedback", backref="markup", order_by="MarkupFeedback.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "version_ref": self.version_ref,
            "x": self.x,
            "y": self.y,
            "markup_type": self.markup_type,
            "number": self.number,
            "color": self.color,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "revision_number": self.revision_number,
            "archived_at": _iso(self.archived_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. MarkupFeedback
# ═════════════════════════════════════════════════════════════════════════════


class MarkupFeedback(db.Model):
    """Feedback text attached to one markup pin."""

    __tablename__ = "markup_feedback"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    markup_id = db.Column(
        db.Integer, db.ForeignKey("image_markups.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(20), nullable=False, default="design")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="pending")
    comments = db.Column(db.JSON, default=list)
    created_by = db.Column(db.String(100), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    revision_number = db.Column(db.Integer, nullable=False, default=1)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "markup_id": self.markup_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "comments": list(self.comments or []),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "revision_number": self.revision_number,
            "archived_at": _iso(self.archived_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 4. RevisionChecklistItem
# ═════════════════════════════════════════════════════════════════════════════


class RevisionChecklistItem(db.Model):
    """
    Client-side checklist entry for the current revision round.

    A row with ``is_revision_header`` marks the start of a round; it is never
    counted when checking whether the round's work is finished.
    """

    __tablename__ = "revision_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    content = db.Column(db.Text, nullable=False)
    item_type = db.Column(db.String(20), nullable=False, default="manual")
    source_id = db.Column(db.Integer, nullable=True, comment="Feedback or MarkupFeedback id")
    is_revision_header = db.Column(db.Boolean, nullable=False, default=False)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comments = db.Column(db.JSON, default=list)
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    revision_number = db.Column(db.Integer, nullable=False, default=1)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "content": self.content,
            "item_type": self.item_type,
            "source_id": self.source_id,
            "is_revision_header": self.is_revision_header,
            "is_completed": self.is_completed,
            "completed_at": _iso(self.completed_at),
            "comments": list(self.comments or []),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "revision_number": self.revision_number,
            "archived_at": _iso(self.archived_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 5. RevisionArchive
# ═════════════════════════════════════════════════════════════════════════════


class RevisionArchive(db.Model):
    """
    Immutable snapshot of one revision round.

    Written once by the archiver; there is no update path.
    """

    __tablename__ = "revision_archives"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    revision_number = db.Column(db.Integer, nullable=False)
    markups = db.Column(db.JSON, nullable=False, default=list)
    markup_feedback = db.Column(db.JSON, nullable=False, default=list)
    general_feedback = db.Column(db.JSON, nullable=False, default=list)
    checklist_items = db.Column(db.JSON, nullable=False, default=list)
    archived_by = db.Column(db.String(100), nullable=True)
    archived_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "revision_number", name="uq_revision_archive_number"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "revision_number": self.revision_number,
            "markups": list(self.markups or []),
            "markup_feedback": list(self.markup_feedback or []),
            "general_feedback": list(self.general_feedback or []),
            "checklist_items": list(self.checklist_items or []),
            "archived_by": self.archived_by,
            "archived_at": _iso(self.archived_at),
        }

    def __repr__(self):
        return f"<RevisionArchive project={self.project_id} rev={self.revision_number}>"
