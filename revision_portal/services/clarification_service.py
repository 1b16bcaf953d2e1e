"""
Revision Portal
Clarification sub-workflow.

A designer may question individual feedback items of a pending request.
Raising a question parks the request in ``clarification_needed``; it
returns to ``pending`` only through an explicit ``reconcile_clarifications``
call once every question has been answered by the client and resolved.

    ClarificationRequest:  pending ──respond──▶ answered ──resolve──▶ resolved

Usage:
    from revision_portal.services.clarification_service import request_clarification

    clar = request_clarification(mr.id, feedback_id="12", question="Which logo?",
                                 requested_by="designer-1")
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from revision_portal.core.exceptions import InvalidStateError, ValidationError
from revision_portal.models import db
from revision_portal.models.audit import write_audit
from revision_portal.models.modification import (
    ClarificationRequest,
    ModificationRequest,
    validate_clarification_transition,
)
from revision_portal.services.helpers.scoped_queries import get_or_404
from revision_portal.services.modification_service import require_transition
from revision_portal.services.notification import dispatch_events, make_event

logger = logging.getLogger(__name__)


def _audit(clar: ClarificationRequest, project_id: int, action: str, actor, diff: dict) -> None:
    try:
        write_audit(
            entity_type="clarification_request",
            entity_id=clar.id,
            action=f"clarification_request.{action}",
            actor=actor,
            project_id=project_id,
            diff=diff,
        )
    except Exception:
        logger.warning("Audit log failed for clarification %s, main flow unaffected", action, exc_info=True)


def _advance(clar: ClarificationRequest, new_status: str, action: str) -> str:
    old = clar.status
    if not validate_clarification_transition(old, new_status):
        raise InvalidStateError(
            "ClarificationRequest", clar.id, action=action, current=old,
            reason=f"cannot move {old} → {new_status}",
        )
    clar.status = new_status
    return old


# ── Raise questions ──────────────────────────────────────────────────────────


def request_clarifications(request_id: int, items: list[dict], requested_by: str) -> list[ClarificationRequest]:
    """
    Raise one or more questions on a pending request in a single transition.

    Args:
        items: [{"feedback_id": "12", "question": "..."}, ...]

    Raises:
        NotFoundError, ValidationError, InvalidStateError
    """
    if not items:
        raise ValidationError("At least one clarification question is required")
    cleaned = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each clarification item must be an object", details={"index": idx})
        question = str(item.get("question") or "").strip()
        if not question:
            raise ValidationError("question is required", details={"index": idx})
        feedback_id = item.get("feedback_id")
        cleaned.append((str(feedback_id) if feedback_id is not None else None, question))

    mr = get_or_404(ModificationRequest, request_id, lock=True)
    previous = mr.status
    mr.status = require_transition(mr, "request_clarification")

    created = []
    for feedback_id, question in cleaned:
        clar = ClarificationRequest(
            modification_request_id=mr.id,
            feedback_id=feedback_id,
            question=question,
            status="pending",
            requested_by=requested_by,
        )
        mr.clarification_requests.append(clar)
        created.append(clar)
    db.session.flush()

    for clar in created:
        _audit(clar, mr.project_id, "request", requested_by, {
            "status": {"old": None, "new": "pending"},
            "parent_status": {"old": previous, "new": mr.status},
        })

    events = [make_event(
        "clarification.requested", mr.project,
        title=(
            f"Designer asked {len(created)} question(s) on "
            f"modification request #{mr.request_number}"
        ),
        message=created[0].question if len(created) == 1 else "",
        entity_type="modification_request", entity_id=mr.id,
        clarification_ids=[c.id for c in created],
    )]
    db.session.commit()

    logger.info(
        "Clarification requested on #%d (%d question(s))", mr.request_number, len(created),
        extra={"project_id": mr.project_id, "modification_request_id": mr.id},
    )
    dispatch_events(events)
    return created


def request_clarification(request_id: int, feedback_id, question: str, requested_by: str) -> ClarificationRequest:
    """Single-question form of ``request_clarifications``."""
    return request_clarifications(
        request_id, [{"feedback_id": feedback_id, "question": question}], requested_by,
    )[0]


# ── Answer / resolve ─────────────────────────────────────────────────────────


def respond_to_clarification(clarification_id: int, response: str, answered_by: str) -> ClarificationRequest:
    """pending → answered.  Notifies the designer."""
    if not response or not str(response).strip():
        raise ValidationError("response is required")

    clar = get_or_404(ClarificationRequest, clarification_id, lock=True)
    old = _advance(clar, "answered", "respond")
    clar.response = str(response).strip()
    clar.answered_by = answered_by
    clar.answered_at = datetime.now(timezone.utc)

    mr = clar.modification_request
    _audit(clar, mr.project_id, "respond", answered_by, {"status": {"old": old, "new": clar.status}})
    events = [make_event(
        "clarification.answered", mr.project,
        title=f"Client answered a question on modification request #{mr.request_number}",
        message=clar.response,
        entity_type="clarification_request", entity_id=clar.id,
    )]
    db.session.commit()

    logger.info(
        "Clarification %d answered", clar.id,
        extra={"project_id": mr.project_id, "modification_request_id": mr.id},
    )
    dispatch_events(events)
    return clar


def resolve_clarification(clarification_id: int, resolved_by: str | None = None) -> ClarificationRequest:
    """answered → resolved.  Does not move the parent; see reconcile."""
    clar = get_or_404(ClarificationRequest, clarification_id, lock=True)
    old = _advance(clar, "resolved", "resolve")
    clar.resolved_by = resolved_by
    clar.resolved_at = datetime.now(timezone.utc)

    mr = clar.modification_request
    _audit(clar, mr.project_id, "resolve", resolved_by, {"status": {"old": old, "new": clar.status}})
    db.session.commit()

    logger.info(
        "Clarification %d resolved", clar.id,
        extra={"project_id": mr.project_id, "modification_request_id": mr.id},
    )
    return clar


def reconcile_clarifications(request_id: int, actor: str | None = None) -> ModificationRequest:
    """
    Return a ``clarification_needed`` request to ``pending`` once every
    clarification is resolved.  A no-op in any other situation.

    The clarification rows are re-read after the request row is locked.
    """
    mr = get_or_404(ModificationRequest, request_id, lock=True)
    if mr.status != "clarification_needed":
        return mr

    statuses = db.session.execute(
        select(ClarificationRequest.status)
        .where(ClarificationRequest.modification_request_id == mr.id)
    ).scalars().all()
    if any(s != "resolved" for s in statuses):
        logger.info(
            "Reconcile skipped: %d clarification(s) still open",
            sum(1 for s in statuses if s != "resolved"),
            extra={"project_id": mr.project_id, "modification_request_id": mr.id},
        )
        return mr

    previous = mr.status
    mr.status = require_transition(mr, "reconcile")
    try:
        write_audit(
            entity_type="modification_request",
            entity_id=mr.id,
            action="clarification_request.reconcile",
            actor=actor,
            project_id=mr.project_id,
            diff={"status": {"old": previous, "new": mr.status}},
        )
    except Exception:
        logger.warning("Audit log failed for reconcile, main flow unaffected", exc_info=True)
    db.session.commit()

    logger.info(
        "Modification request #%d back to pending", mr.request_number,
        extra={"project_id": mr.project_id, "modification_request_id": mr.id},
    )
    return mr


def list_clarifications(request_id: int) -> list[ClarificationRequest]:
    mr = get_or_404(ModificationRequest, request_id)
    return list(mr.clarification_requests)
