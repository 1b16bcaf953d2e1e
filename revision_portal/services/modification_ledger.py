"""
Revision Portal
Counter Ledger: the project's revision budget.

Two views of the same budget:
    - ``Project.remaining_modification_count``: the transactional counter.
      Mutated only through ``deduct`` / ``restore`` on a locked project row.
    - ``compute_tracker``: a derived read model rebuilt by scanning every
      request of the project (used / in_progress / remaining).

Policy:
    - A free request deducts one unit at creation time.
    - Rejecting a free request restores one unit.
    - Completion never touches the budget.
    - Deduct floors at 0, restore caps at ``total_modification_count``.
      Neither ever raises.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from revision_portal.models import db
from revision_portal.models.audit import write_audit
from revision_portal.models.modification import ModificationRequest
from revision_portal.models.project import Project
from revision_portal.services.helpers.scoped_queries import get_or_404
from revision_portal.services.notification import make_event

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("approved", "in_progress")


def lock_project(project_id: int) -> Project:
    """Load the project row with ``SELECT ... FOR UPDATE``.

    Every ledger mutation and request-number assignment happens on a row
    obtained here, inside the caller's transaction.  ``Project.version_id``
    additionally turns a lost update into a StaleDataError on flush.
    """
    return get_or_404(Project, project_id, lock=True)


def _audit_budget(project, action, old, actor):
    try:
        write_audit(
            entity_type="project",
            entity_id=project.id,
            action=f"project.{action}",
            actor=actor,
            project_id=project.id,
            diff={"remaining_modification_count": {"old": old, "new": project.remaining_modification_count}},
        )
    except Exception:
        logger.warning("Audit log failed for budget %s, main flow unaffected", action, exc_info=True)


def deduct(project: Project, events: list | None = None, *, actor: str | None = None) -> Project:
    """Consume one unit of budget, floored at 0.

    Appends ``ledger.deducted`` when a unit was consumed and
    ``ledger.exhausted`` when the counter went from 1 to 0.
    """
    old = project.remaining_modification_count or 0
    new = max(0, old - 1)
    if new == old:
        logger.info(
            "Budget already exhausted, deduct is a no-op",
            extra={"project_id": project.id},
        )
        return project

    project.remaining_modification_count = new
    logger.info(
        "Budget deducted %d → %d", old, new,
        extra={"project_id": project.id, "remaining": new},
    )
    _audit_budget(project, "deduct", old, actor)

    if events is not None:
        events.append(make_event(
            "ledger.deducted", project,
            title=f"Revision used: {new} of {project.total_modification_count} remaining",
            entity_type="project", entity_id=project.id,
            remaining=new,
        ))
        if old == 1 and new == 0:
            events.append(make_event(
                "ledger.exhausted", project,
                title="All included revisions have been used",
                message="Further modification requests will be billed as additional work.",
                severity="warning",
                entity_type="project", entity_id=project.id,
                remaining=0,
            ))
    return project


def restore(project: Project, events: list | None = None, *, actor: str | None = None) -> Project:
    """Return one unit of budget, capped at the project's total."""
    old = project.remaining_modification_count or 0
    new = min(project.total_modification_count, old + 1)
    if new == old:
        logger.info(
            "Budget already at total, restore is a no-op",
            extra={"project_id": project.id},
        )
        return project

    project.remaining_modification_count = new
    logger.info(
        "Budget restored %d → %d", old, new,
        extra={"project_id": project.id, "remaining": new},
    )
    _audit_budget(project, "restore", old, actor)

    if events is not None:
        events.append(make_event(
            "ledger.restored", project,
            title=f"Revision restored: {new} of {project.total_modification_count} remaining",
            severity="success",
            entity_type="project", entity_id=project.id,
            remaining=new,
        ))
    return project


# ── Tracker read model ───────────────────────────────────────────────────────


@dataclass
class ModificationTracker:
    """Derived budget view; never stored."""
    project_id: int
    total_allowed: int
    used: int
    in_progress: int
    remaining: int
    available_budget: int
    requests: list[dict] = field(default_factory=list)
    additional_requests: list[dict] = field(default_factory=list)
    total_additional_cost: float = 0.0
    last_updated: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "total_allowed": self.total_allowed,
            "used": self.used,
            "in_progress": self.in_progress,
            "remaining": self.remaining,
            "available_budget": self.available_budget,
            "requests": self.requests,
            "additional_requests": self.additional_requests,
            "total_additional_cost": self.total_additional_cost,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


def compute_tracker(project_id: int) -> ModificationTracker:
    """Rebuild the budget view from every request of the project.

    Additional-cost requests never count against the budget.
    """
    project = get_or_404(Project, project_id)
    rows = db.session.execute(
        select(ModificationRequest)
        .where(ModificationRequest.project_id == project_id)
        .order_by(ModificationRequest.request_number)
    ).scalars().all()

    free = [r for r in rows if not r.is_additional_cost]
    additional = [r for r in rows if r.is_additional_cost]

    used = sum(1 for r in free if r.status == "completed")
    active = sum(1 for r in free if r.status in ACTIVE_STATUSES)
    total = project.total_modification_count

    total_additional_cost = sum(
        float(r.additional_cost_amount or 0)
        for r in additional if r.status == "completed"
    )

    return ModificationTracker(
        project_id=project.id,
        total_allowed=total,
        used=used,
        in_progress=active,
        remaining=max(0, total - used - active),
        available_budget=project.remaining_modification_count,
        requests=[r.to_dict() for r in free],
        additional_requests=[r.to_dict() for r in additional],
        total_additional_cost=round(total_additional_cost, 2),
        last_updated=datetime.now(timezone.utc),
    )


# ── Additional-cost decision ─────────────────────────────────────────────────


def get_base_fee(project: Project) -> float:
    """Per-project fee, falling back to DEFAULT_ADDITIONAL_MODIFICATION_FEE."""
    if project.additional_modification_fee is not None:
        return float(project.additional_modification_fee)
    return float(current_app.config["DEFAULT_ADDITIONAL_MODIFICATION_FEE"])


def calculate_additional_cost(project_id: int | None = None, urgency: str = "normal",
                              *, project: Project | None = None) -> dict:
    """Decide whether a request filed now is free or billed.

    Free while the project's available budget is above zero; otherwise billed
    at the base fee, scaled by URGENT_FEE_MULTIPLIER for urgent requests.
    """
    if project is None:
        project = get_or_404(Project, project_id)

    available = project.remaining_modification_count or 0
    if available > 0:
        return {
            "is_additional_cost": False,
            "amount": None,
            "base_fee": None,
            "multiplier": None,
            "available_budget": available,
        }

    base_fee = get_base_fee(project)
    multiplier = current_app.config["URGENT_FEE_MULTIPLIER"] if urgency == "urgent" else 1.0
    return {
        "is_additional_cost": True,
        "amount": round(base_fee * multiplier, 2),
        "base_fee": base_fee,
        "multiplier": multiplier,
        "available_budget": 0,
    }
