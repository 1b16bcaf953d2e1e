"""
JSON error bodies and the exception-to-status mapping.

Every failing endpoint answers with ``{"error": ..., "code": ..., "details"?}``.
Routes return ``api_error(E.VALIDATION_REQUIRED, "...")`` for malformed input;
anything raised by a service is translated by the handlers that
``register_error_handlers(bp)`` installs on each blueprint.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from revision_portal.core.exceptions import (
    BudgetExhaustedError,
    ClarificationPendingError,
    ConflictError,
    IncompleteChecklistError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from revision_portal.models import db

logger = logging.getLogger(__name__)


class E:
    """Error codes clients branch on."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"  # malformed request
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"  # business rule
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"
    CLARIFICATION_PENDING = "ERR_CLARIFICATION_PENDING"
    CHECKLIST_INCOMPLETE = "ERR_CHECKLIST_INCOMPLETE"
    BUDGET_EXHAUSTED = "ERR_BUDGET_EXHAUSTED"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    **dict.fromkeys((E.CONFLICT_DUPLICATE, E.CONFLICT_STATE, E.CONFLICT_CONCURRENT,
                     E.CLARIFICATION_PENDING, E.CHECKLIST_INCOMPLETE, E.BUDGET_EXHAUSTED), 409),
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a view; unknown codes default to 400."""
    status = status or _STATUS_BY_CODE.get(code, 400)
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status


def register_error_handlers(bp) -> None:
    """Attach the service-exception to HTTP mapping to one blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(InvalidStateError)
    def _handle_invalid_state(error: InvalidStateError):
        db.session.rollback()
        return api_error(
            E.CONFLICT_STATE, str(error),
            details={"action": error.action, "current_status": error.current_status},
        )

    @bp.errorhandler(ClarificationPendingError)
    def _handle_clarification_pending(error: ClarificationPendingError):
        db.session.rollback()
        return api_error(
            E.CLARIFICATION_PENDING, str(error),
            details={"clarification_ids": error.open_ids},
        )

    @bp.errorhandler(IncompleteChecklistError)
    def _handle_incomplete_checklist(error: IncompleteChecklistError):
        db.session.rollback()
        return api_error(
            E.CHECKLIST_INCOMPLETE, str(error),
            details={"incomplete_item_ids": error.incomplete_ids},
        )

    @bp.errorhandler(BudgetExhaustedError)
    def _handle_budget_exhausted(error: BudgetExhaustedError):
        db.session.rollback()
        return api_error(
            E.BUDGET_EXHAUSTED, str(error),
            details={"total_allowed": error.total_allowed, "remaining": 0},
        )

    @bp.errorhandler(StaleDataError)
    def _handle_stale(error: StaleDataError):
        db.session.rollback()
        logger.warning("Concurrent update rejected endpoint=%s: %s", request.endpoint, error)
        return api_error(E.CONFLICT_CONCURRENT, "The record was modified concurrently, retry the request")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
