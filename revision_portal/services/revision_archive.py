"""
Revision Portal
Revision Cycle Archiver.

``approve_and_advance_revision`` closes revision N and opens N+1:

    1. every active non-header checklist entry must be completed
       (IncompleteChecklistError) and the project must still have budget
       (BudgetExhaustedError); both checks run before anything is written
    2. active checklist entries are stamped completed with revision N
    3. active markups, markup feedback, general feedback and checklist
       entries are frozen into one RevisionArchive row tagged N
    4. the active surface is cleared (archived_at) and a single revision
       header tagged N+1 opens the next round
    5. current_revision_number becomes N+1 and one unit is deducted
       through the ledger

Archives are written once and never updated.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from revision_portal.core.exceptions import (
    BudgetExhaustedError,
    IncompleteChecklistError,
    NotFoundError,
)
from revision_portal.models import db
from revision_portal.models.audit import write_audit
from revision_portal.models.project import Project
from revision_portal.models.revision import (
    Feedback,
    ImageMarkup,
    MarkupFeedback,
    RevisionArchive,
    RevisionChecklistItem,
)
from revision_portal.services import modification_ledger as ledger
from revision_portal.services.helpers.scoped_queries import get_or_404
from revision_portal.services.notification import dispatch_events, make_event
from revision_portal.services.revision_surface import active_rows, create_revision_header

logger = logging.getLogger(__name__)


def approve_and_advance_revision(project_id: int, archived_by: str | None = None) -> dict:
    """
    Archive the current revision round and open the next one.

    Returns:
        {"archive": RevisionArchive, "header": RevisionChecklistItem, "project": Project}

    Raises:
        NotFoundError, IncompleteChecklistError, BudgetExhaustedError
    """
    project = ledger.lock_project(project_id)

    checklist = active_rows(RevisionChecklistItem, project.id)
    incomplete = [c.id for c in checklist if not c.is_revision_header and not c.is_completed]
    if incomplete:
        raise IncompleteChecklistError(project.id, incomplete)
    if (project.remaining_modification_count or 0) <= 0:
        raise BudgetExhaustedError(project.id, project.total_modification_count)

    current = project.current_revision_number
    now = datetime.now(timezone.utc)

    for entry in checklist:
        if not entry.is_revision_header:
            entry.is_completed = True
            entry.completed_at = entry.completed_at or now
        entry.revision_number = current

    markups = active_rows(ImageMarkup, project.id)
    markup_feedback = active_rows(MarkupFeedback, project.id)
    general_feedback = active_rows(Feedback, project.id)

    archive = RevisionArchive(
        project_id=project.id,
        revision_number=current,
        markups=[m.to_dict() for m in markups],
        markup_feedback=[f.to_dict() for f in markup_feedback],
        general_feedback=[f.to_dict() for f in general_feedback],
        checklist_items=[c.to_dict() for c in checklist],
        archived_by=archived_by,
        archived_at=now,
    )
    db.session.add(archive)

    for row in (*checklist, *markups, *markup_feedback, *general_feedback):
        row.archived_at = now

    header = create_revision_header(project, current + 1)
    project.current_revision_number = current + 1

    events = []
    ledger.deduct(project, events, actor=archived_by)
    events.insert(0, make_event(
        "revision.advanced", project,
        title=f"Revision {current} approved, revision {current + 1} opened",
        severity="success",
        entity_type="project", entity_id=project.id,
        revision_number=current + 1,
    ))
    db.session.flush()

    try:
        write_audit(
            entity_type="revision",
            entity_id=archive.id,
            action="revision.advance",
            actor=archived_by,
            project_id=project.id,
            diff={
                "current_revision_number": {"old": current, "new": current + 1},
                "archived_items": {
                    "old": None,
                    "new": len(checklist) + len(markups) + len(markup_feedback) + len(general_feedback),
                },
            },
        )
    except Exception:
        logger.warning("Audit log failed for revision advance, main flow unaffected", exc_info=True)
    db.session.commit()

    logger.info(
        "Revision %d archived, now on revision %d", current, current + 1,
        extra={
            "project_id": project.id,
            "archive_id": archive.id,
            "remaining": project.remaining_modification_count,
        },
    )
    dispatch_events(events)
    return {"archive": archive, "header": header, "project": project}


def list_revision_archives(project_id: int) -> list[RevisionArchive]:
    get_or_404(Project, project_id)
    return list(db.session.execute(
        select(RevisionArchive)
        .where(RevisionArchive.project_id == project_id)
        .order_by(RevisionArchive.revision_number)
    ).scalars())


def get_revision_archive(project_id: int, revision_number: int) -> RevisionArchive:
    archive = db.session.execute(
        select(RevisionArchive).where(
            RevisionArchive.project_id == project_id,
            RevisionArchive.revision_number == revision_number,
        )
    ).scalar_one_or_none()
    if archive is None:
        raise NotFoundError("RevisionArchive", revision_number, project_id=project_id)
    return archive
