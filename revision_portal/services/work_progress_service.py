"""
Revision Portal
Work-Progress Tracker, service layer.

Business logic for:
    - Creation:     seed a checklist for an approved request, flip it to in_progress
    - Item updates: partial patch with status/progress normalisation and
                    dependency guard
    - Rollup:       overall_progress / status recomputed under the WorkProgress
                    row lock after every item mutation
    - Cascade:      rollup reaching ``completed`` completes the parent request
                    in the same transaction
    - Attachments:  metadata rows on checklist items

Item transitions (see CHECKLIST_ITEM_TRANSITIONS):
    pending ──▶ in_progress ──▶ completed
    pending ──▶ completed
    in_progress ──▶ pending
"""

import logging
import math
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from revision_portal.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from revision_portal.models import db
from revision_portal.models.audit import write_audit
from revision_portal.models.modification import (
    CHECKLIST_CATEGORIES,
    CHECKLIST_ITEM_STATUSES,
    CHECKLIST_PRIORITIES,
    ModificationRequest,
    WorkAttachment,
    WorkChecklistItem,
    WorkProgress,
    validate_checklist_item_transition,
)
from revision_portal.services.helpers.scoped_queries import get_or_404, get_scoped
from revision_portal.services.modification_service import (
    finalize_completion,
    require_transition,
    start_modification_request,
)
from revision_portal.services.notification import dispatch_events, make_event
from revision_portal.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title", "description", "category", "priority",
    "estimated_hours", "assigned_to", "status", "progress_percentage",
)


# ── Validation helpers ───────────────────────────────────────────────────────


def _validate_choice(value, allowed, field_name):
    if value not in allowed:
        raise ValidationError(
            f"{field_name} must be one of {sorted(allowed)}",
            details={field_name: value},
        )
    return value


def _validate_hours(value):
    if value is None or value == "":
        return None
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValidationError("estimated_hours must be a number", details={"estimated_hours": value}) from None
    if hours < 0:
        raise ValidationError("estimated_hours must not be negative", details={"estimated_hours": value})
    return hours


def _validate_progress(value):
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("progress_percentage must be an integer", details={"progress_percentage": value})
    try:
        progress = int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            "progress_percentage must be an integer", details={"progress_percentage": value},
        ) from None
    if not 0 <= progress <= 100:
        raise ValidationError("progress_percentage must be between 0 and 100", details={"progress_percentage": value})
    return progress


def _has_cycle(graph: dict[int, list[int]]) -> bool:
    """Iterative DFS over position → dependency positions."""
    for start in graph:
        visited = set()
        stack = list(graph[start])
        while stack:
            current = stack.pop()
            if current == start:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(graph.get(current, []))
    return False


def _resolve_dependencies(items: list[dict]) -> dict[int, list[int]]:
    """Map each item position to the positions it depends on.

    A dependency may name a sibling by list position (int) or by title (str).
    """
    titles = {}
    for idx, item in enumerate(items):
        titles.setdefault(item["title"], []).append(idx)

    graph = {}
    for idx, item in enumerate(items):
        refs = item.get("dependencies") or []
        if not isinstance(refs, list):
            raise ValidationError("dependencies must be a list", details={"index": idx})
        resolved = []
        for ref in refs:
            if isinstance(ref, bool):
                target = None
            elif isinstance(ref, int):
                target = ref if 0 <= ref < len(items) else None
            elif isinstance(ref, str):
                matches = titles.get(ref, [])
                if len(matches) > 1:
                    raise ValidationError(
                        f"Dependency '{ref}' is ambiguous: several items share that title",
                        details={"index": idx, "dependency": ref},
                    )
                target = matches[0] if matches else None
            else:
                target = None
            if target is None:
                raise ValidationError(
                    "Dependency does not refer to an item of the same checklist",
                    details={"index": idx, "dependency": ref},
                )
            if target == idx:
                raise ValidationError("An item cannot depend on itself", details={"index": idx})
            if target not in resolved:
                resolved.append(target)
        graph[idx] = resolved

    if _has_cycle(graph):
        raise ValidationError("Checklist dependencies contain a cycle")
    return graph


def _clean_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("checklist_items must be a non-empty list")
    cleaned = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Each checklist item must be an object", details={"index": idx})
        title = str(raw.get("title") or "").strip()
        if not title:
            raise ValidationError("Checklist item title is required", details={"index": idx})
        cleaned.append({
            "title": title,
            "description": raw.get("description") or "",
            "category": _validate_choice(raw.get("category") or "design", CHECKLIST_CATEGORIES, "category"),
            "priority": _validate_choice(raw.get("priority") or "medium", CHECKLIST_PRIORITIES, "priority"),
            "estimated_hours": _validate_hours(raw.get("estimated_hours")),
            "assigned_to": raw.get("assigned_to"),
            "dependencies": raw.get("dependencies") or [],
        })
    return cleaned


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def create_work_progress(
    request_id: int,
    items: list[dict],
    estimated_completion=None,
    created_by: str | None = None,
) -> WorkProgress:
    """
    Seed the work checklist of an approved request and start the work.

    Raises:
        NotFoundError, ValidationError, InvalidStateError
    """
    cleaned = _clean_items(items)
    graph = _resolve_dependencies(cleaned)
    estimate = parse_date_input(estimated_completion, "estimated_completion")

    mr = get_or_404(ModificationRequest, request_id, lock=True)
    require_transition(mr, "start")

    wp = WorkProgress(
        modification_request_id=mr.id,
        overall_progress=0,
        status="not_started",
        estimated_completion=estimate or mr.estimated_completion_date,
        created_by=created_by,
    )
    db.session.add(wp)
    created = []
    for idx, data in enumerate(cleaned):
        item = WorkChecklistItem(
            sort_order=idx,
            title=data["title"],
            description=data["description"],
            category=data["category"],
            priority=data["priority"],
            estimated_hours=data["estimated_hours"],
            assigned_to=data["assigned_to"],
            dependencies=[],
            status="pending",
            progress_percentage=0,
        )
        wp.checklist_items.append(item)
        created.append(item)
    db.session.flush()

    for idx, item in enumerate(created):
        item.dependencies = [created[pos].id for pos in graph[idx]]

    start_modification_request(mr)

    try:
        write_audit(
            entity_type="work_progress",
            entity_id=wp.id,
            action="work_progress.create",
            actor=created_by,
            project_id=mr.project_id,
            diff={"items": {"old": None, "new": len(created)}, "request_status": {"old": "approved", "new": mr.status}},
        )
    except Exception:
        logger.warning("Audit log failed for work_progress create, main flow unaffected", exc_info=True)

    events = [make_event(
        "work.started", mr.project,
        title=f"Work started on modification request #{mr.request_number}",
        message=f"{len(created)} checklist item(s)",
        entity_type="modification_request", entity_id=mr.id,
    )]
    db.session.commit()

    logger.info(
        "Work progress created with %d item(s)", len(created),
        extra={"project_id": mr.project_id, "modification_request_id": mr.id},
    )
    dispatch_events(events)
    return wp


# ═════════════════════════════════════════════════════════════════════════════
# Item updates & rollup
# ═════════════════════════════════════════════════════════════════════════════


def _lock_work_progress(request_id: int) -> WorkProgress:
    wp = db.session.execute(
        select(WorkProgress)
        .where(WorkProgress.modification_request_id == request_id)
        .with_for_update()
    ).scalar_one_or_none()
    if wp is None:
        raise NotFoundError("WorkProgress", request_id)
    return wp


def _target_status(item: WorkChecklistItem, patch: dict) -> str:
    """Status the item ends up in after applying ``patch``."""
    if "status" in patch:
        return _validate_choice(patch["status"], CHECKLIST_ITEM_STATUSES, "status")
    if "progress_percentage" in patch:
        progress = patch["progress_percentage"]
        if progress == 100:
            return "completed"
        if progress > 0 and item.status == "pending":
            return "in_progress"
    return item.status


def _check_dependencies(wp: WorkProgress, item: WorkChecklistItem, target: str) -> None:
    blocking = [
        other.id for other in wp.checklist_items
        if other.id in (item.dependencies or []) and other.status != "completed"
    ]
    if blocking:
        raise InvalidStateError(
            "WorkChecklistItem", item.id, action=f"move to {target}", current=item.status,
            reason=f"waiting on dependencies {blocking}",
        )


def _apply_item_patch(wp: WorkProgress, item: WorkChecklistItem, patch: dict) -> dict:
    """Apply the patch to ``item``; returns the {field: {old, new}} diff."""
    unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Unsupported field(s): {unknown}", details={"fields": unknown})

    patch = dict(patch)
    if "title" in patch:
        patch["title"] = str(patch["title"] or "").strip()
        if not patch["title"]:
            raise ValidationError("title must not be empty")
    if "category" in patch:
        _validate_choice(patch["category"], CHECKLIST_CATEGORIES, "category")
    if "priority" in patch:
        _validate_choice(patch["priority"], CHECKLIST_PRIORITIES, "priority")
    if "estimated_hours" in patch:
        patch["estimated_hours"] = _validate_hours(patch["estimated_hours"])
    if "progress_percentage" in patch:
        patch["progress_percentage"] = _validate_progress(patch["progress_percentage"])

    old_status = item.status
    target = _target_status(item, patch)
    progress = patch.get("progress_percentage")

    if target != old_status:
        if not validate_checklist_item_transition(old_status, target):
            raise InvalidStateError(
                "WorkChecklistItem", item.id, action=f"move to {target}", current=old_status,
            )
        if target in ("in_progress", "completed"):
            _check_dependencies(wp, item, target)
    elif old_status == "completed" and progress is not None and progress != 100:
        raise InvalidStateError(
            "WorkChecklistItem", item.id, action="lower progress", current=old_status,
        )

    if target == "in_progress" and progress == 100:
        raise ValidationError("progress_percentage 100 means the item is completed")
    if target == "pending" and progress:
        raise ValidationError("A pending item cannot carry progress")

    diff = {}
    for field_name in ("title", "description", "category", "priority", "estimated_hours", "assigned_to"):
        if field_name in patch and getattr(item, field_name) != patch[field_name]:
            diff[field_name] = {"old": getattr(item, field_name), "new": patch[field_name]}
            setattr(item, field_name, patch[field_name])

    old_progress = item.progress_percentage
    now = datetime.now(timezone.utc)
    if target != old_status:
        item.status = target
        if target in ("in_progress", "completed") and item.started_at is None:
            item.started_at = now
        if target == "completed":
            item.completed_at = now
        if target == "pending":
            item.progress_percentage = 0
        diff["status"] = {"old": old_status, "new": target}

    if item.status == "completed":
        item.progress_percentage = 100
    elif progress is not None:
        item.progress_percentage = progress
    if item.progress_percentage != old_progress:
        diff["progress_percentage"] = {"old": old_progress, "new": item.progress_percentage}
    return diff


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def recompute_work_progress(wp: WorkProgress, events: list, *, actor: str | None = None) -> WorkProgress:
    """
    Rebuild ``overall_progress`` and ``status`` from the items.

    Caller holds the WorkProgress row lock.  A flip to ``completed``
    completes the parent request in the same transaction.
    """
    items = list(wp.checklist_items)
    old_progress = wp.overall_progress or 0
    old_status = wp.status

    if items:
        wp.overall_progress = _round_half_up(sum(i.progress_percentage for i in items) / len(items))
    else:
        wp.overall_progress = 0

    if items and all(i.status == "completed" for i in items):
        wp.status = "completed"
    elif any(i.status in ("in_progress", "completed") for i in items):
        wp.status = "in_progress"
    else:
        wp.status = "not_started"
    wp.last_updated = datetime.now(timezone.utc)

    mr = wp.modification_request
    milestones = current_app.config["PROGRESS_NOTIFICATION_MILESTONES"]
    crossed = [m for m in milestones if old_progress < m <= wp.overall_progress]
    if crossed:
        events.append(make_event(
            "work.updated", mr.project,
            title=f"Modification request #{mr.request_number} is {crossed[-1]}% done",
            entity_type="modification_request", entity_id=mr.id,
            overall_progress=wp.overall_progress,
            milestone=crossed[-1],
        ))

    if wp.status == "completed" and old_status != "completed":
        events.append(make_event(
            "work.completed", mr.project,
            title=f"All work items finished for modification request #{mr.request_number}",
            severity="success",
            entity_type="modification_request", entity_id=mr.id,
        ))
        finalize_completion(mr, events, completed_by=actor, cascaded=True)

    logger.info(
        "Work progress %d%% → %d%% (%s)", old_progress, wp.overall_progress, wp.status,
        extra={"project_id": mr.project_id, "modification_request_id": mr.id},
    )
    return wp


def update_checklist_item(request_id: int, item_id: int, patch: dict, updated_by: str | None = None) -> WorkProgress:
    """
    Partial update of one checklist item, followed by the rollup.

    Raises:
        NotFoundError, ValidationError, InvalidStateError
    """
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("Update payload must be a non-empty object")

    wp = _lock_work_progress(request_id)
    if wp.status == "completed" or wp.modification_request.status == "completed":
        raise InvalidStateError(
            "WorkProgress", wp.id, action="update item", current=wp.status,
            reason="work is already completed",
        )
    item = get_scoped(WorkChecklistItem, item_id, work_progress_id=wp.id)

    diff = _apply_item_patch(wp, item, patch)
    item.updated_by = updated_by

    events = []
    recompute_work_progress(wp, events, actor=updated_by)

    if diff:
        try:
            write_audit(
                entity_type="work_checklist_item",
                entity_id=item.id,
                action="work_checklist_item.update",
                actor=updated_by,
                project_id=wp.modification_request.project_id,
                diff=diff,
            )
        except Exception:
            logger.warning("Audit log failed for checklist item update, main flow unaffected", exc_info=True)
    db.session.commit()
    dispatch_events(events)
    return wp


# ═════════════════════════════════════════════════════════════════════════════
# Attachments & reads
# ═════════════════════════════════════════════════════════════════════════════


def add_attachment(request_id: int, item_id: int, data: dict, uploaded_by: str | None = None) -> WorkAttachment:
    """Record file metadata against a checklist item."""
    data = data or {}
    file_name = str(data.get("file_name") or "").strip()
    file_url = str(data.get("file_url") or "").strip()
    if not file_name or not file_url:
        raise ValidationError("file_name and file_url are required")
    file_size = data.get("file_size")
    if file_size is not None:
        if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0:
            raise ValidationError("file_size must be a non-negative integer", details={"file_size": file_size})

    wp = get_work_progress(request_id)
    item = get_scoped(WorkChecklistItem, item_id, work_progress_id=wp.id)
    attachment = WorkAttachment(
        file_name=file_name,
        file_url=file_url,
        file_type=data.get("file_type") or "",
        file_size=file_size,
        uploaded_by=uploaded_by,
    )
    item.attachments.append(attachment)
    db.session.commit()

    logger.info(
        "Attachment %s added to checklist item %d", file_name, item.id,
        extra={"modification_request_id": request_id},
    )
    return attachment


def get_work_progress(request_id: int) -> WorkProgress:
    mr = get_or_404(ModificationRequest, request_id)
    if mr.work_progress is None:
        raise NotFoundError("WorkProgress", request_id)
    return mr.work_progress
