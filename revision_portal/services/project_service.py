"""Project service: budget configuration for client/designer projects."""

import logging

from flask import current_app

from revision_portal.core.exceptions import ValidationError
from revision_portal.models import db
from revision_portal.models.project import Project
from revision_portal.services.helpers.scoped_queries import get_or_404
from revision_portal.services.revision_surface import create_revision_header

logger = logging.getLogger(__name__)


def _non_negative_int(value, field_name):
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer", details={field_name: value})
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer", details={field_name: value}) from None
    if number < 0:
        raise ValidationError(f"{field_name} must not be negative", details={field_name: value})
    return number


def projects_query(*, client_id: str | None = None, designer_id: str | None = None):
    """Project query filtered by participant, newest first (caller paginates)."""
    query = Project.query
    if client_id:
        query = query.filter(Project.client_id == client_id)
    if designer_id:
        query = query.filter(Project.designer_id == designer_id)
    return query.order_by(Project.created_at.desc(), Project.id.desc())


def create_project(data: dict) -> Project:
    """Create a project with its revision budget and open revision 1."""
    data = data or {}
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required")

    total = data.get("total_modification_count")
    total = (
        current_app.config["DEFAULT_TOTAL_MODIFICATION_COUNT"]
        if total is None else _non_negative_int(total, "total_modification_count")
    )

    fee = data.get("additional_modification_fee")
    if fee is not None:
        try:
            fee = float(fee)
        except (TypeError, ValueError):
            raise ValidationError(
                "additional_modification_fee must be a number",
                details={"additional_modification_fee": fee},
            ) from None
        if fee < 0:
            raise ValidationError("additional_modification_fee must not be negative")

    project = Project(
        name=name,
        description=data.get("description", "") or "",
        client_id=data.get("client_id"),
        designer_id=data.get("designer_id"),
        total_modification_count=total,
        remaining_modification_count=total,
        additional_modification_fee=fee,
        current_revision_number=1,
    )
    db.session.add(project)
    db.session.flush()
    create_revision_header(project, 1)
    db.session.commit()

    logger.info(
        "Project created with %d revision(s)", total,
        extra={"project_id": project.id},
    )
    return project


def get_project(project_id: int) -> Project:
    return get_or_404(Project, project_id)
