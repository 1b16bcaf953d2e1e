"""
Scoped lookups.

Child rows are always fetched together with the parent they must belong to,
so an id from another project (or another request) behaves exactly like a
missing row:

    get_scoped(ImageMarkup, markup_id, project_id=pid)
    get_scoped(ClarificationRequest, cid, modification_request_id=rid)
    get_scoped(WorkChecklistItem, iid, work_progress_id=wp.id, lock=True)

Top-level rows (Project, ModificationRequest) use ``get_or_404``.
"""

import logging

from sqlalchemy import select

from revision_portal.core.exceptions import NotFoundError
from revision_portal.models import db

logger = logging.getLogger(__name__)

SCOPE_COLUMNS = ("project_id", "modification_request_id", "work_progress_id")


def _fetch(model, pk, filters, lock):
    stmt = select(model).where(model.id == pk)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    if lock:
        stmt = stmt.with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def get_scoped(model, pk: int, *, lock: bool = False, **scope):
    """
    Fetch ``model`` by primary key inside ``scope``.

    Raises:
        ValueError: no scope given, an unknown scope keyword, or a scope column
                    the model does not have (programming errors).
        NotFoundError: the row is missing or belongs to another parent.
    """
    unknown = set(scope) - set(SCOPE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown scope keyword(s) {sorted(unknown)}")
    filters = {k: v for k, v in scope.items() if v is not None}
    if not filters:
        raise ValueError(f"{model.__name__} id={pk}: a scope filter is required")
    missing = [k for k in filters if not hasattr(model, k)]
    if missing:
        raise ValueError(f"{model.__name__} has no scope column(s) {missing}")

    row = _fetch(model, pk, filters, lock)
    if row is None:
        logger.debug("%s id=%s not found in scope %s", model.__name__, pk, filters)
        raise NotFoundError(model.__name__, pk, project_id=filters.get("project_id"))
    return row


def get_scoped_or_none(model, pk: int, **scope):
    try:
        return get_scoped(model, pk, **scope)
    except NotFoundError:
        return None


def get_or_404(model, pk: int, *, lock: bool = False):
    row = _fetch(model, pk, {}, lock)
    if row is None:
        raise NotFoundError(model.__name__, pk)
    return row
