"""
Revision Portal
Modification Request State Machine, service layer.

Business logic for:
    - Creation:      request numbering under the project lock, bundling
                     validation, additional-cost decision, budget deduction
    - Transitions:   approve, reject, complete (manual or cascaded), start
    - History:       append-only ModificationHistory row per completion
    - Read side:     get/list, statistics, available feedback, history,
                     available actions

Transitions (see MODIFICATION_TRANSITIONS):
    pending ──▶ clarification_needed ──▶ pending        (clarification_service)
    pending ──▶ approved ──▶ in_progress ──▶ completed   (work_progress_service)
    approved ──▶ completed                               (manual)
    pending ──▶ rejected

Every public mutating function commits once and dispatches its workflow
events after the commit.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from revision_portal.core.exceptions import (
    ClarificationPendingError,
    ConflictError,
    InvalidStateError,
    ValidationError,
)
from revision_portal.models import db
from revision_portal.models.audit import write_audit
from revision_portal.models.modification import (
    MODIFICATION_STATUSES,
    MODIFICATION_TRANSITIONS,
    URGENCY_LEVELS,
    ModificationHistory,
    ModificationRequest,
    validate_modification_transition,
)
from revision_portal.models.project import Project
from revision_portal.models.revision import Feedback
from revision_portal.services import modification_ledger as ledger
from revision_portal.services.helpers.scoped_queries import get_or_404
from revision_portal.services.notification import dispatch_events, make_event
from revision_portal.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _audit(mr: ModificationRequest, action: str, actor: str | None, diff: dict) -> None:
    try:
        write_audit(
            entity_type="modification_request",
            entity_id=mr.id,
            action=f"modification_request.{action}",
            actor=actor,
            project_id=mr.project_id,
            diff=diff,
        )
    except Exception:
        logger.warning("Audit log failed for modification_request %s, main flow unaffected", action, exc_info=True)


def require_transition(mr: ModificationRequest, action: str) -> str:
    target = validate_modification_transition(mr.status, action)
    if target is None:
        raise InvalidStateError(
            "ModificationRequest", mr.id, action=action, current=mr.status,
            reason=f"allowed from {MODIFICATION_TRANSITIONS[action]['from']}",
        )
    return target


def _normalize_feedback_ids(raw) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("feedback_ids must be a list", details={"feedback_ids": raw})
    ids = []
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, (str, int)) or str(item).strip() == "":
            raise ValidationError(
                "feedback_ids must contain feedback references (str or int)",
                details={"feedback_ids": raw},
            )
        ref = str(item).strip()
        if ref not in ids:
            ids.append(ref)
    return ids


def bundled_feedback_ids(project_id: int) -> set[str]:
    """Feedback references already claimed by a non-rejected request."""
    stmt = select(ModificationRequest).where(
        ModificationRequest.project_id == project_id,
        ModificationRequest.status != "rejected",
    )
    used = set()
    for mr in db.session.execute(stmt).scalars():
        used.update(str(f) for f in (mr.feedback_ids or []))
    return used


def _next_request_number(project_id: int) -> int:
    current = db.session.execute(
        select(func.max(ModificationRequest.request_number))
        .where(ModificationRequest.project_id == project_id)
    ).scalar()
    return (current or 0) + 1


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def create_modification_request(project_id: int, form_data: dict, requested_by: str) -> ModificationRequest:
    """
    File a new modification request against the project's revision budget.

    Args:
        project_id: Owning project.
        form_data: {"feedback_ids", "description", "urgency",
                    "estimated_completion_date", "notes"}
        requested_by: Client user id.

    Raises:
        NotFoundError, ValidationError, ConflictError
    """
    form_data = form_data or {}
    urgency = form_data.get("urgency") or "normal"
    if urgency not in URGENCY_LEVELS:
        raise ValidationError(
            f"urgency must be one of {sorted(URGENCY_LEVELS)}",
            details={"urgency": urgency},
        )
    if not requested_by:
        raise ValidationError("requested_by is required")
    feedback_ids = _normalize_feedback_ids(form_data.get("feedback_ids"))
    estimated = parse_date_input(form_data.get("estimated_completion_date"), "estimated_completion_date")

    project = ledger.lock_project(project_id)

    already_bundled = sorted(set(feedback_ids) & bundled_feedback_ids(project.id))
    if already_bundled:
        raise ValidationError(
            "Feedback already included in another modification request",
            details={"feedback_ids": already_bundled},
        )

    cost = ledger.calculate_additional_cost(project=project, urgency=urgency)
    events = []
    number = _next_request_number(project.id)

    mr = ModificationRequest(
        project_id=project.id,
        request_number=number,
        feedback_ids=feedback_ids,
        description=(form_data.get("description") or "").strip(),
        status="pending",
        urgency=urgency,
        is_additional_cost=cost["is_additional_cost"],
        additional_cost_amount=cost["amount"],
        requested_by=requested_by,
        estimated_completion_date=estimated,
        notes=form_data.get("notes"),
    )
    db.session.add(mr)
    try:
        db.session.flush()
    except IntegrityError:
        # a writer without the row lock took the same number
        db.session.rollback()
        raise ConflictError("ModificationRequest", "request_number", str(number)) from None

    title = f"Modification request #{mr.request_number} submitted"
    if mr.is_additional_cost:
        title += f" (additional cost {cost['amount']:,.0f})"
    events.append(make_event(
        "modification.submitted", project,
        title=title,
        message=mr.description,
        entity_type="modification_request", entity_id=mr.id,
        request_number=mr.request_number,
        urgency=mr.urgency,
    ))

    if not mr.is_additional_cost:
        ledger.deduct(project, events, actor=requested_by)

    _audit(mr, "create", requested_by, {
        "status": {"old": None, "new": "pending"},
        "is_additional_cost": {"old": None, "new": mr.is_additional_cost},
    })
    db.session.commit()

    logger.info(
        "Modification request #%d created", mr.request_number,
        extra={
            "project_id": project.id,
            "modification_request_id": mr.id,
            "additional_cost": mr.is_additional_cost,
            "remaining": project.remaining_modification_count,
        },
    )
    dispatch_events(events)
    return mr


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════


def approve_modification_request(request_id: int, approved_by: str, *, notes: str | None = None) -> ModificationRequest:
    """
    pending → approved.

    Raises:
        NotFoundError, ClarificationPendingError, InvalidStateError
    """
    mr = get_or_404(ModificationRequest, request_id, lock=True)

    if mr.status in ("pending", "clarification_needed"):
        open_ids = [c.id for c in mr.clarification_requests if c.status != "resolved"]
        if open_ids:
            raise ClarificationPendingError(mr.id, open_ids)

    previous = mr.status
    mr.status = require_transition(mr, "approve")
    mr.approved_by = approved_by
    mr.approved_at = datetime.now(timezone.utc)
    if notes:
        mr.notes = notes

    _audit(mr, "approve", approved_by, {"status": {"old": previous, "new": mr.status}})
    events = [make_event(
        "modification.approved", mr.project,
        title=f"Modification request #{mr.request_number} approved",
        severity="success",
        entity_type="modification_request", entity_id=mr.id,
    )]
    db.session.commit()

    logger.info(
        "Modification request #%d approved", mr.request_number,
        extra={"project_id": mr.project_id, "modification_request_id": mr.id},
    )
    dispatch_events(events)
    return mr


def reject_modification_request(request_id: int, reason: str, rejected_by: str | None = None) -> ModificationRequest:
    """
    pending → rejected.  A free request gives its budget unit back.

    Raises:
        NotFoundError, ValidationError, InvalidStateError
    """
    if not reason or not str(reason).strip():
        raise ValidationError("rejection_reason is required")

    mr = get_or_404(ModificationRequest, request_id)
    project = ledger.lock_project(mr.project_id)
    db.session.refresh(mr, with_for_update=True)

    previous = mr.status
    mr.status = require_transition(mr, "reject")
    mr.rejected_at = datetime.now(timezone.utc)
    mr.rejection_reason = str(reason).strip()

    events = [make_event(
        "modification.rejected", project,
        title=f"Modification request #{mr.request_number} rejected",
        message=mr.rejection_reason,
        severity="warning",
        entity_type="modification_request", entity_id=mr.id,
    )]
    if not mr.is_additional_cost:
        ledger.restore(project, events, actor=rejected_by)

    _audit(mr, "reject", rejected_by, {
        "status": {"old": previous, "new": mr.status},
        "rejection_reason": {"old": None, "new": mr.rejection_reason},
    })
    db.session.commit()

    logger.info(
        "Modification request #%d rejected", mr.request_number,
        extra={
            "project_id": project.id,
            "modification_request_id": mr.id,
            "remaining": project.remaining_modification_count,
        },
    )
    dispatch_events(events)
    return mr


def start_modification_request(mr: ModificationRequest) -> None:
    """approved → in_progress.  Called by work-progress creation; no commit."""
    previous = mr.status
    mr.status = require_transition(mr, "start")
    logger.info(
        "Modification request #%d started", mr.request_number,
        extra={"project_id": mr.project_id, "modification_request_id": mr.id, "from_status": previous},
    )


def finalize_completion(
    mr: ModificationRequest,
    events: list,
    *,
    completed_by: str | None,
    cascaded: bool,
    actual_completion_date: date | None = None,
) -> ModificationHistory:
    """
    {approved, in_progress} → completed, plus the history row.

    Shared by the manual completion endpoint and the checklist cascade.
    Does not commit and never touches the budget.
    """
    previous = mr.status
    mr.status = require_transition(mr, "complete")
    now = datetime.now(timezone.utc)
    mr.completed_at = now
    mr.actual_completion_date = actual_completion_date or now.date()

    history = ModificationHistory(
        project_id=mr.project_id,
        modification_request_id=mr.id,
        request_number=mr.request_number,
        is_additional_cost=mr.is_additional_cost,
        additional_cost_amount=mr.additional_cost_amount,
        completed_by=completed_by,
        cascaded=cascaded,
        completed_at=now,
    )
    db.session.add(history)

    _audit(mr, "complete", completed_by, {
        "status": {"old": previous, "new": mr.status},
        "cascaded": {"old": None, "new": cascaded},
    })
    events.append(make_event(
        "modification.completed", mr.project,
        title=f"Modification request #{mr.request_number} completed",
        severity="success",
        entity_type="modification_request", entity_id=mr.id,
        cascaded=cascaded,
    ))
    logger.info(
        "Modification request #%d completed%s", mr.request_number,
        " (checklist rollup)" if cascaded else "",
        extra={"project_id": mr.project_id, "modification_request_id": mr.id, "from_status": previous},
    )
    return history


def complete_modification_request(
    request_id: int,
    completed_by: str | None = None,
    *,
    actual_completion_date=None,
    notes: str | None = None,
) -> ModificationRequest:
    """
    Manual completion: {approved, in_progress} → completed.

    Raises:
        NotFoundError, ValidationError, InvalidStateError
    """
    actual = parse_date_input(actual_completion_date, "actual_completion_date")
    mr = get_or_404(ModificationRequest, request_id, lock=True)

    events = []
    finalize_completion(
        mr, events,
        completed_by=completed_by,
        cascaded=False,
        actual_completion_date=actual,
    )
    if notes:
        mr.notes = notes
    db.session.commit()
    dispatch_events(events)
    return mr


# ═════════════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════════════


def get_modification_request(request_id: int) -> ModificationRequest:
    return get_or_404(ModificationRequest, request_id)


def list_modification_requests(project_id: int, status: str | None = None) -> list[ModificationRequest]:
    get_or_404(Project, project_id)
    stmt = select(ModificationRequest).where(ModificationRequest.project_id == project_id)
    if status:
        if status not in MODIFICATION_STATUSES:
            raise ValidationError(f"Unknown status: {status}", details={"status": status})
        stmt = stmt.where(ModificationRequest.status == status)
    stmt = stmt.order_by(ModificationRequest.request_number)
    return list(db.session.execute(stmt).scalars())


def get_modification_statistics(project_id: int) -> dict:
    """Counts per status plus additional-cost and urgent totals."""
    requests = list_modification_requests(project_id)
    stats = {"total": len(requests)}
    for status in (
        "pending", "clarification_needed", "approved",
        "in_progress", "completed", "rejected",
    ):
        stats[status] = sum(1 for r in requests if r.status == status)
    stats["additional_cost_requests"] = sum(1 for r in requests if r.is_additional_cost)
    stats["urgent_requests"] = sum(1 for r in requests if r.urgency == "urgent")
    return stats


def get_available_feedback(project_id: int, report_id: str | None = None) -> list[Feedback]:
    """Active, unresolved feedback not yet bundled into a live request."""
    get_or_404(Project, project_id)
    used = bundled_feedback_ids(project_id)
    stmt = select(Feedback).where(
        Feedback.project_id == project_id,
        Feedback.archived_at.is_(None),
        Feedback.status != "resolved",
    )
    if report_id:
        stmt = stmt.where(Feedback.report_id == str(report_id))
    stmt = stmt.order_by(Feedback.id)
    return [f for f in db.session.execute(stmt).scalars() if str(f.id) not in used]


def list_modification_history(project_id: int) -> list[ModificationHistory]:
    get_or_404(Project, project_id)
    return list(db.session.execute(
        select(ModificationHistory)
        .where(ModificationHistory.project_id == project_id)
        .order_by(ModificationHistory.completed_at, ModificationHistory.id)
    ).scalars())


def get_available_actions(mr: ModificationRequest) -> list[str]:
    """Actions the state machine would accept right now."""
    actions = [a for a, rule in MODIFICATION_TRANSITIONS.items() if mr.status in rule["from"]]
    unresolved = mr.has_unresolved_clarifications()
    if unresolved:
        actions = [a for a in actions if a not in ("approve", "reconcile")]
    return actions
