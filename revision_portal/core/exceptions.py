"""
Service-layer exceptions.

Services raise; ``utils.errors.register_error_handlers`` maps each type to an
HTTP status and error code once per blueprint:

    NotFoundError              404  ERR_NOT_FOUND
    ValidationError            422  ERR_VALIDATION_INVALID
    ConflictError              409  ERR_CONFLICT_DUPLICATE
    InvalidStateError          409  ERR_CONFLICT_STATE
    ClarificationPendingError  409  ERR_CLARIFICATION_PENDING
    IncompleteChecklistError   409  ERR_CHECKLIST_INCOMPLETE
    BudgetExhaustedError       409  ERR_BUDGET_EXHAUSTED

Budget arithmetic itself never raises; only a revision advance refuses to
run on an exhausted budget.
"""


class NotFoundError(Exception):
    """Missing row, or a row outside the scope it was looked up in.

    ``resource_id`` and ``project_id`` are for logs only; the HTTP body names
    just the resource.
    """

    def __init__(self, resource: str, resource_id=None, project_id: int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_id = project_id
        where = f" id={resource_id}" if resource_id is not None else ""
        scope = f" (project={project_id})" if project_id is not None else ""
        super().__init__(f"{resource}{where} not found{scope}")


class ValidationError(Exception):
    """Well-formed input that breaks a business rule.

    ``details`` is a field-level breakdown returned to the client, e.g.
    ``{"feedback_ids": ["2"]}`` for feedback already bundled elsewhere.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """A unique value was taken concurrently."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class InvalidStateError(Exception):
    """The entity's current status does not allow ``action``."""

    def __init__(self, resource: str, resource_id, *, action: str, current: str,
                 reason: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.action = action
        self.current_status = current
        message = f"Cannot '{action}' {resource} {resource_id} (status={current})"
        super().__init__(f"{message}: {reason}" if reason else message)


class _BlockedError(Exception):
    """A transition refused because of other rows; carries their ids."""

    def __init__(self, message: str, blocking_ids) -> None:
        self.blocking_ids = list(blocking_ids)
        super().__init__(f"{message}: {self.blocking_ids}")


class ClarificationPendingError(_BlockedError):
    """Approval refused while clarifications are pending or answered."""

    def __init__(self, request_id: int, open_ids) -> None:
        self.request_id = request_id
        super().__init__(
            f"ModificationRequest {request_id} has unresolved clarification request(s)", open_ids,
        )

    @property
    def open_ids(self):
        return self.blocking_ids


class IncompleteChecklistError(_BlockedError):
    """Revision advance refused while checklist entries are open."""

    def __init__(self, project_id: int, incomplete_ids) -> None:
        self.project_id = project_id
        super().__init__(f"Project {project_id} has incomplete checklist item(s)", incomplete_ids)

    @property
    def incomplete_ids(self):
        return self.blocking_ids


class BudgetExhaustedError(Exception):
    """Revision advance refused because no revisions remain."""

    def __init__(self, project_id: int, total_allowed: int) -> None:
        self.project_id = project_id
        self.total_allowed = total_allowed
        super().__init__(f"Project {project_id} has no remaining revisions (0 of {total_allowed})")
