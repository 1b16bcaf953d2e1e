"""
Revision Portal
Revision surface, write path.

Feedback entries, markup pins, markup feedback and ad-hoc checklist entries
accumulate against the project's *current* revision until the revision is
advanced (see revision_archive).  Every general or markup feedback entry
gets a companion checklist entry so the client can tick it off.

Only rows with ``archived_at IS NULL`` are writable.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from revision_portal.core.exceptions import InvalidStateError, ValidationError
from revision_portal.models import db
from revision_portal.models.project import Project
from revision_portal.models.revision import (
    FEEDBACK_CATEGORIES,
    FEEDBACK_PRIORITIES,
    MARKUP_TYPES,
    Feedback,
    ImageMarkup,
    MarkupFeedback,
    RevisionChecklistItem,
)
from revision_portal.services.helpers.scoped_queries import get_or_404, get_scoped
from revision_portal.services.modification_ledger import lock_project

logger = logging.getLogger(__name__)


def _choice(data, key, allowed, default):
    value = data.get(key) or default
    if value not in allowed:
        raise ValidationError(f"{key} must be one of {sorted(allowed)}", details={key: value})
    return value


def _coordinate(data, key):
    value = data.get(key)
    if isinstance(value, bool):
        value = None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} is required and must be a number", details={key: value}) from None


def _add_checklist_entry(project, content, item_type, source_id=None, created_by=None):
    entry = RevisionChecklistItem(
        project_id=project.id,
        content=content,
        item_type=item_type,
        source_id=source_id,
        is_revision_header=False,
        is_completed=False,
        comments=[],
        created_by=created_by,
        revision_number=project.current_revision_number,
    )
    db.session.add(entry)
    return entry


def create_revision_header(project, revision_number: int) -> RevisionChecklistItem:
    """Placeholder row opening a revision round.  Caller commits."""
    header = RevisionChecklistItem(
        project_id=project.id,
        content=f"Revision {revision_number}",
        item_type="manual",
        is_revision_header=True,
        is_completed=False,
        comments=[],
        revision_number=revision_number,
    )
    db.session.add(header)
    return header


# ── Feedback ─────────────────────────────────────────────────────────────────


def add_feedback(project_id: int, data: dict, created_by: str) -> Feedback:
    data = data or {}
    content = str(data.get("content") or "").strip()
    if not content:
        raise ValidationError("content is required")
    project = get_or_404(Project, project_id)

    feedback = Feedback(
        project_id=project.id,
        report_id=str(data["report_id"]) if data.get("report_id") is not None else None,
        content=content,
        priority=_choice(data, "priority", FEEDBACK_PRIORITIES, "medium"),
        category=_choice(data, "category", FEEDBACK_CATEGORIES, "design"),
        status="pending",
        comments=[],
        created_by=created_by,
        revision_number=project.current_revision_number,
    )
    db.session.add(feedback)
    db.session.flush()
    _add_checklist_entry(project, content, "general", feedback.id, created_by)
    db.session.commit()

    logger.info(
        "Feedback %d added (revision %d)", feedback.id, project.current_revision_number,
        extra={"project_id": project.id},
    )
    return feedback


# ── Markups ──────────────────────────────────────────────────────────────────


def add_markup(project_id: int, data: dict, created_by: str) -> ImageMarkup:
    """Place a pin; ``number`` continues the active round's sequence."""
    data = data or {}
    x = _coordinate(data, "x")
    y = _coordinate(data, "y")
    markup_type = _choice(data, "markup_type", MARKUP_TYPES, "point")

    project = lock_project(project_id)
    current_max = db.session.execute(
        select(func.max(ImageMarkup.number)).where(
            ImageMarkup.project_id == project.id,
            ImageMarkup.archived_at.is_(None),
        )
    ).scalar()

    markup = ImageMarkup(
        project_id=project.id,
        version_ref=data.get("version_ref"),
        x=x,
        y=y,
        markup_type=markup_type,
        number=(current_max or 0) + 1,
        color=data.get("color") or "#ef4444",
        created_by=created_by,
        revision_number=project.current_revision_number,
    )
    db.session.add(markup)
    db.session.commit()

    logger.info(
        "Markup #%d placed", markup.number,
        extra={"project_id": project.id, "markup_id": markup.id},
    )
    return markup


def add_markup_feedback(markup_id: int, data: dict, created_by: str) -> MarkupFeedback:
    data = data or {}
    title = str(data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required")

    markup = get_or_404(ImageMarkup, markup_id)
    if markup.archived_at is not None:
        raise InvalidStateError(
            "ImageMarkup", markup.id, action="add feedback", current="archived",
        )
    project = get_or_404(Project, markup.project_id)

    mf = MarkupFeedback(
        project_id=markup.project_id,
        markup_id=markup.id,
        title=title,
        description=data.get("description") or "",
        category=_choice(data, "category", FEEDBACK_CATEGORIES, "design"),
        priority=_choice(data, "priority", FEEDBACK_PRIORITIES, "medium"),
        status="pending",
        comments=[],
        created_by=created_by,
        revision_number=project.current_revision_number,
    )
    db.session.add(mf)
    db.session.flush()
    _add_checklist_entry(project, f"#{markup.number} {title}", "markup", mf.id, created_by)
    db.session.commit()

    logger.info(
        "Markup feedback %d added to markup #%d", mf.id, markup.number,
        extra={"project_id": markup.project_id},
    )
    return mf


# ── Checklist ────────────────────────────────────────────────────────────────


def add_checklist_entry(project_id: int, data: dict, created_by: str | None = None) -> RevisionChecklistItem:
    data = data or {}
    content = str(data.get("content") or "").strip()
    if not content:
        raise ValidationError("content is required")
    project = get_or_404(Project, project_id)
    entry = _add_checklist_entry(project, content, "manual", None, created_by)
    db.session.commit()
    return entry


def set_checklist_entry_completed(project_id: int, entry_id: int, completed: bool = True) -> RevisionChecklistItem:
    """Tick (or untick) an active, non-header checklist entry."""
    entry = get_scoped(RevisionChecklistItem, entry_id, project_id=project_id)
    if entry.archived_at is not None:
        raise InvalidStateError(
            "RevisionChecklistItem", entry.id, action="complete", current="archived",
        )
    if entry.is_revision_header:
        raise ValidationError("Revision header entries cannot be completed")

    entry.is_completed = bool(completed)
    entry.completed_at = datetime.now(timezone.utc) if entry.is_completed else None
    db.session.commit()

    logger.info(
        "Checklist entry %d %s", entry.id, "completed" if entry.is_completed else "reopened",
        extra={"project_id": project_id},
    )
    return entry


# ── Read ─────────────────────────────────────────────────────────────────────


def active_rows(model, project_id):
    """Rows of ``model`` on the open revision round, oldest first."""
    return list(db.session.execute(
        select(model)
        .where(model.project_id == project_id, model.archived_at.is_(None))
        .order_by(model.id)
    ).scalars())


def get_revision_surface(project_id: int) -> dict:
    project = get_or_404(Project, project_id)
    checklist = active_rows(RevisionChecklistItem, project.id)
    work_items = [c for c in checklist if not c.is_revision_header]
    return {
        "project_id": project.id,
        "current_revision_number": project.current_revision_number,
        "total_revisions": project.total_modification_count,
        "remaining_revisions": project.remaining_modification_count,
        "markups": [m.to_dict() for m in active_rows(ImageMarkup, project.id)],
        "markup_feedback": [f.to_dict() for f in active_rows(MarkupFeedback, project.id)],
        "general_feedback": [f.to_dict() for f in active_rows(Feedback, project.id)],
        "checklist_items": [c.to_dict() for c in checklist],
        "completed_items": sum(1 for c in work_items if c.is_completed),
        "total_items": len(work_items),
    }
