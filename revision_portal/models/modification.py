"""
Revision Portal
Modification Request domain models.

Models:
    - ModificationRequest:   one unit of requested change against a project's revision budget
    - ClarificationRequest:  designer question raised against a pending request
    - WorkProgress:          execution tracker for one approved request (1:1)
    - WorkChecklistItem:     one unit of designer work inside a WorkProgress
    - WorkAttachment:        file metadata attached to a checklist item
    - ModificationHistory:   append-only audit row written when a request completes

Architecture:
    Project ──1:N──▶ ModificationRequest ──1:N──▶ ClarificationRequest
    ModificationRequest ──1:1──▶ WorkProgress ──1:N──▶ WorkChecklistItem ──1:N──▶ WorkAttachment
    Project ──1:N──▶ ModificationHistory

Lifecycle states:
    ModificationRequest:   pending → clarification_needed → pending
                           pending → approved → in_progress → completed
                           pending → rejected
    ClarificationRequest:  pending → answered → resolved
    WorkProgress:          not_started → in_progress → completed   (derived)
    WorkChecklistItem:     pending → in_progress → completed
"""

from datetime import datetime, timezone

from revision_portal.models import db


# ── Constants ────────────────────────────────────────────────────────────────

MODIFICATION_STATUSES = {
    "pending", "clarification_needed", "approved",
    "in_progress", "completed", "rejected",
}

URGENCY_LEVELS = {"normal", "urgent"}

CLARIFICATION_STATUSES = {"pending", "answered", "resolved"}

WORK_PROGRESS_STATUSES = {"not_started", "in_progress", "completed"}

CHECKLIST_ITEM_STATUSES = {"pending", "in_progress", "completed"}

CHECKLIST_CATEGORIES = {"design", "development", "review", "delivery", "other"}

CHECKLIST_PRIORITIES = {"low", "medium", "high", "critical"}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

MODIFICATION_TRANSITIONS = {
    "approve":             {"from": ["pending"], "to": "approved"},
    "reject":              {"from": ["pending"], "to": "rejected"},
    "request_clarification": {"from": ["pending"], "to": "clarification_needed"},
    "reconcile":           {"from": ["clarification_needed"], "to": "pending"},
    "start":               {"from": ["approved"], "to": "in_progress"},
    "complete":            {"from": ["approved", "in_progress"], "to": "completed"},
}

CLARIFICATION_TRANSITIONS = {
    "pending":  ["answered"],
    "answered": ["resolved"],
    "resolved": [],
}

CHECKLIST_ITEM_TRANSITIONS = {
    "pending":     ["in_progress", "completed"],
    "in_progress": ["pending", "completed"],
    "completed":   [],
}


def validate_modification_transition(status, action):
    """Return the target status if ``action`` is allowed from ``status``, else None."""
    rule = MODIFICATION_TRANSITIONS.get(action)
    if not rule or status not in rule["from"]:
        return None
    return rule["to"]


def validate_clarification_transition(old_status, new_status):
    """Return True if ClarificationRequest status transition is valid."""
    return new_status in CLARIFICATION_TRANSITIONS.get(old_status, [])


def validate_checklist_item_transition(old_status, new_status):
    """Return True if WorkChecklistItem status transition is valid."""
    return new_status in CHECKLIST_ITEM_TRANSITIONS.get(old_status, [])


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# 1. ModificationRequest
# ═════════════════════════════════════════════════════════════════════════════


class ModificationRequest(db.Model):
    """
    One unit of requested change, bundling feedback/markup items.

    ``request_number`` is assigned under the project row lock in the service
    layer; the unique constraint is the safety net.
    """

    __tablename__ = "modification_requests"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    request_number = db.Column(db.Integer, nullable=False)

    feedback_ids = db.Column(db.JSON, default=list, comment="Bundled feedback/markup references")
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(30), nullable=False, default="pending",
        comment="pending | clarification_needed | approved | in_progress | completed | rejected",
    )
    urgency = db.Column(db.String(10), nullable=False, default="normal")

    is_additional_cost = db.Column(db.Boolean, nullable=False, default=False)
    additional_cost_amount = db.Column(db.Numeric(12, 2), nullable=True)

    requested_by = db.Column(db.String(100), nullable=False)
    requested_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    approved_by = db.Column(db.String(100), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_completion_date = db.Column(db.Date, nullable=True)
    estimated_completion_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "request_number", name="uq_modification_request_number"),
        db.CheckConstraint(
            "status IN ('pending','clarification_needed','approved',"
            "'in_progress','completed','rejected')",
            name="ck_modification_request_status",
        ),
        db.CheckConstraint(
            "urgency IN ('normal','urgent')",
            name="ck_modification_request_urgency",
        ),
        db.CheckConstraint(
            "NOT (approved_at IS NOT NULL AND rejected_at IS NOT NULL)",
            name="ck_modification_request_single_decision",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    clarification_requests = db.relationship(
        "ClarificationRequest",
        backref="modification_request",
        order_by="ClarificationRequest.id",
        cascade="all, delete-orphan",
    )
    work_progress = db.relationship(
        "WorkProgress",
        backref="modification_request",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def has_unresolved_clarifications(self):
        return any(c.status != "resolved" for c in self.clarification_requests)

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "request_number": self.request_number,
            "feedback_ids": list(self.feedback_ids or []),
            "description": self.description,
            "status": self.status,
            "urgency": self.urgency,
            "is_additional_cost": self.is_additional_cost,
            "additional_cost_amount": (
                float(self.additional_cost_amount)
                if self.additional_cost_amount is not None else None
            ),
            "requested_by": self.requested_by,
            "requested_at": _iso(self.requested_at),
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "completed_at": _iso(self.completed_at),
            "actual_completion_date": _iso(self.actual_completion_date),
            "estimated_completion_date": _iso(self.estimated_completion_date),
            "notes": self.notes,
        }
        if include_children:
            result["clarification_requests"] = [c.to_dict() for c in self.clarification_requests]
            result["work_progress"] = self.work_progress.to_dict() if self.work_progress else None
        return result

    def __repr__(self):
        return f"<ModificationRequest {self.id}: #{self.request_number} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ClarificationRequest
# ═════════════════════════════════════════════════════════════════════════════


class ClarificationRequest(db.Model):
    """Question raised by the designer on one feedback item of a pending request."""

    __tablename__ = "clarification_requests"

    id = db.Column(db.Integer, primary_key=True)
    modification_request_id = db.Column(
        db.Integer, db.ForeignKey("modification_requests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    feedback_id = db.Column(db.String(64), nullable=True)
    question = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")

    requested_by = db.Column(db.String(100), nullable=False)
    requested_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    response = db.Column(db.Text, nullable=True)
    answered_by = db.Column(db.String(100), nullable=True)
    answered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(100), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','answered','resolved')",
            name="ck_clarification_request_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "modification_request_id": self.modification_request_id,
            "feedback_id": self.feedback_id,
            "question": self.question,
            "status": self.status,
            "requested_by": self.requested_by,
            "requested_at": _iso(self.requested_at),
            "response": self.response,
            "answered_by": self.answered_by,
            "answered_at": _iso(self.answered_at),
            "resolved_by": self.resolved_by,
            "resolved_at": _iso(self.resolved_at),
        }

    def __repr__(self):
        return f"<ClarificationRequest {self.id}: {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. WorkProgress
# ═════════════════════════════════════════════════════════════════════════════


class WorkProgress(db.Model):
    """
    Execution tracker for one approved ModificationRequest.

    ``overall_progress`` and ``status`` are derived from the checklist items
    and rewritten by the service layer after every item mutation.
    """

    __tablename__ = "work_progress"

    id = db.Column(db.Integer, primary_key=True)
    modification_request_id = db.Column(
        db.Integer, db.ForeignKey("modification_requests.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    overall_progress = db.Column(db.Integer, nullable=False, default=0)
    estimated_completion = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="not_started")
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    last_updated = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "overall_progress BETWEEN 0 AND 100",
            name="ck_work_progress_range",
        ),
        db.CheckConstraint(
            "status IN ('not_started','in_progress','completed')",
            name="ck_work_progress_status",
        ),
    )

    checklist_items = db.relationship(
        "WorkChecklistItem",
        backref="work_progress",
        order_by="WorkChecklistItem.sort_order",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        items = list(self.checklist_items)
        return {
            "id": self.id,
            "modification_request_id": self.modification_request_id,
            "overall_progress": self.overall_progress,
            "estimated_completion": _iso(self.estimated_completion),
            "status": self.status,
            "created_by": self.created_by,
            "last_updated": _iso(self.last_updated),
            "completed_items": sum(1 for i in items if i.status == "completed"),
            "total_items": len(items),
            "checklist_items": [i.to_dict() for i in items],
        }

    def __repr__(self):
        return f"<WorkProgress {self.id}: {self.overall_progress}% {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. WorkChecklistItem
# ═════════════════════════════════════════════════════════════════════════════


class WorkChecklistItem(db.Model):
    """One unit of designer work. ``dependencies`` lists sibling item ids."""

    __tablename__ = "work_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    work_progress_id = db.Column(
        db.Integer, db.ForeignKey("work_progress.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(20), nullable=False, default="design")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    estimated_hours = db.Column(db.Float, nullable=True)
    assigned_to = db.Column(db.String(100), nullable=True)
    dependencies = db.Column(db.JSON, default=list)

    status = db.Column(db.String(20), nullable=False, default="pending")
    progress_percentage = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','in_progress','completed')",
            name="ck_work_checklist_item_status",
        ),
        db.CheckConstraint(
            "category IN ('design','development','review','delivery','other')",
            name="ck_work_checklist_item_category",
        ),
        db.CheckConstraint(
            "priority IN ('low','medium','high','critical')",
            name="ck_work_checklist_item_priority",
        ),
        db.CheckConstraint(
            "progress_percentage BETWEEN 0 AND 100",
            name="ck_work_checklist_item_progress",
        ),
    )

    attachments = db.relationship(
        "WorkAttachment",
        backref="checklist_item",
        order_by="WorkAttachment.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "work_progress_id": self.work_progress_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "estimated_hours": self.estimated_hours,
            "assigned_to": self.assigned_to,
            "dependencies": list(self.dependencies or []),
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "attachments": [a.to_dict() for a in self.attachments],
        }

    def __repr__(self):
        return f"<WorkChecklistItem {self.id}: {self.title[:40]} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 5. WorkAttachment
# ═════════════════════════════════════════════════════════════════════════════


class WorkAttachment(db.Model):
    """File metadata only; storage lives outside the engine."""

    __tablename__ = "work_attachments"

    id = db.Column(db.Integer, primary_key=True)
    checklist_item_id = db.Column(
        db.Integer, db.ForeignKey("work_checklist_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    file_name = db.Column(db.String(300), nullable=False)
    file_url = db.Column(db.String(1000), nullable=False)
    file_type = db.Column(db.String(100), default="")
    file_size = db.Column(db.Integer, nullable=True)
    uploaded_by = db.Column(db.String(100), nullable=True)
    uploaded_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "checklist_item_id": self.checklist_item_id,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": _iso(self.uploaded_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 6. ModificationHistory
# ═════════════════════════════════════════════════════════════════════════════


class ModificationHistory(db.Model):
    """
    Append-only record of completed modification requests.

    History is for audit; budget accounting lives on the project row.
    """

    __tablename__ = "modification_history"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    modification_request_id = db.Column(
        db.Integer, db.ForeignKey("modification_requests.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    request_number = db.Column(db.Integer, nullable=False)
    is_additional_cost = db.Column(db.Boolean, nullable=False, default=False)
    additional_cost_amount = db.Column(db.Numeric(12, 2), nullable=True)
    completed_by = db.Column(db.String(100), nullable=True)
    cascaded = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="True when completed by the checklist rollup rather than a caller",
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "modification_request_id": self.modification_request_id,
            "request_number": self.request_number,
            "is_additional_cost": self.is_additional_cost,
            "additional_cost_amount": (
                float(self.additional_cost_amount)
                if self.additional_cost_amount is not None else None
            ),
            "completed_by": self.completed_by,
            "cascaded": self.cascaded,
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<ModificationHistory {self.id}: request #{self.request_number}>"
