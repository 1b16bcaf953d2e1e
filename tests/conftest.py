"""
Shared pytest fixtures for the Revision Portal test suite.

Provides:
    - app: Flask application (session-scoped) wired to a RecordingNotifier
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - notifier: the app's RecordingNotifier, emptied before every test
    - project: Pre-created Project with the default budget of 3
"""

import pytest

from revision_portal import create_app
from revision_portal.models import db as _db
from revision_portal.services.notification import InAppNotifier

CLIENT_ID = "client-1"
DESIGNER_ID = "designer-1"


class RecordingNotifier(InAppNotifier):
    """In-app sink that also keeps every emitted (event, recipient, context)."""

    def __init__(self):
        self.emitted = []
        self.fail = False

    def emit(self, event_type, recipient, project_context):
        if self.fail:
            raise RuntimeError("notification sink unavailable")
        self.emitted.append((event_type, recipient, dict(project_context)))
        super().emit(event_type, recipient, project_context)

    def events(self, event_type=None):
        return [e for e in self.emitted if event_type is None or e[0] == event_type]

    def reset(self):
        self.emitted.clear()
        self.fail = False


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing", notifier=RecordingNotifier())


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.extensions["workflow_notifier"].reset()
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def notifier(app):
    return app.extensions["workflow_notifier"]


# ── ORM helper factories ─────────────────────────────────────────────────


def make_project(*, total=3, fee=None, name="Brand Refresh"):
    """Create a committed Project with its revision-1 header."""
    from revision_portal.services.project_service import create_project

    return create_project({
        "name": name,
        "client_id": CLIENT_ID,
        "designer_id": DESIGNER_ID,
        "total_modification_count": total,
        "additional_modification_fee": fee,
    })


def make_request(project_id, *, feedback_ids=None, urgency="normal", requested_by=CLIENT_ID):
    from revision_portal.services.modification_service import create_modification_request

    return create_modification_request(
        project_id,
        {"feedback_ids": feedback_ids or [], "urgency": urgency, "description": "Adjust header"},
        requested_by,
    )


def make_approved_request(project_id, **kw):
    from revision_portal.services.modification_service import approve_modification_request

    mr = make_request(project_id, **kw)
    return approve_modification_request(mr.id, DESIGNER_ID)


@pytest.fixture()
def project():
    """Project with the default budget of 3 free revisions."""
    return make_project()
