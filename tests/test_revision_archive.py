"""
Revision Cycle Archiver tests.

Advance closes revision N into an immutable RevisionArchive, leaves a single
header for N+1 on the active surface and spends one unit of budget.
"""

import pytest

from conftest import CLIENT_ID, make_project

from revision_portal.core.exceptions import (
    BudgetExhaustedError,
    IncompleteChecklistError,
    NotFoundError,
)
from revision_portal.models import db
from revision_portal.models.project import Project
from revision_portal.models.revision import Feedback, RevisionArchive, RevisionChecklistItem
from revision_portal.services import revision_surface as surface
from revision_portal.services.revision_archive import (
    approve_and_advance_revision,
    get_revision_archive,
    list_revision_archives,
)


def _populate(project_id):
    fb = surface.add_feedback(project_id, {"content": "Bigger logo"}, CLIENT_ID)
    markup = surface.add_markup(project_id, {"x": 5, "y": 5}, CLIENT_ID)
    mf = surface.add_markup_feedback(markup.id, {"title": "Align left"}, CLIENT_ID)
    return fb, markup, mf


def _complete_all(project_id):
    for entry in RevisionChecklistItem.query.filter_by(project_id=project_id, archived_at=None):
        if not entry.is_revision_header:
            surface.set_checklist_entry_completed(project_id, entry.id)


class TestAdvance:
    def test_archives_and_opens_next_round(self, project, notifier):
        _populate(project.id)
        _complete_all(project.id)

        result = approve_and_advance_revision(project.id, CLIENT_ID)

        archive = result["archive"]
        assert archive.revision_number == 1
        assert len(archive.markups) == 1
        assert len(archive.markup_feedback) == 1
        assert len(archive.general_feedback) == 1
        assert len(archive.checklist_items) == 3  # header + 2 companion entries
        assert all(c["revision_number"] == 1 for c in archive.checklist_items)

        project = db.session.get(Project, project.id)
        assert project.current_revision_number == 2
        assert project.remaining_modification_count == 2

        surface_now = surface.get_revision_surface(project.id)
        assert surface_now["markups"] == []
        assert surface_now["general_feedback"] == []
        header, = surface_now["checklist_items"]
        assert header["is_revision_header"] is True
        assert header["revision_number"] == 2
        assert header["content"] == "Revision 2"

        assert notifier.events("revision.advanced")
        assert notifier.events("ledger.deducted")

    def test_empty_round_can_advance(self, project):
        result = approve_and_advance_revision(project.id)
        assert result["archive"].general_feedback == []
        assert result["project"].current_revision_number == 2

    def test_missing_comments_archived_as_empty(self, project):
        fb, _, _ = _populate(project.id)
        fb.comments = None
        db.session.commit()
        _complete_all(project.id)
        archive = approve_and_advance_revision(project.id)["archive"]
        assert archive.general_feedback[0]["comments"] == []

    def test_new_markups_restart_numbering(self, project):
        _populate(project.id)
        _complete_all(project.id)
        approve_and_advance_revision(project.id)
        markup = surface.add_markup(project.id, {"x": 1, "y": 1}, CLIENT_ID)
        assert markup.number == 1
        assert markup.revision_number == 2

    def test_consecutive_advances(self):
        project = make_project(total=3)
        approve_and_advance_revision(project.id)
        approve_and_advance_revision(project.id)
        archives = list_revision_archives(project.id)
        assert [a.revision_number for a in archives] == [1, 2]
        assert get_revision_archive(project.id, 2).revision_number == 2


class TestAdvanceGuards:
    def test_incomplete_checklist_mutates_nothing(self, project):
        fb, _, _ = _populate(project.id)

        with pytest.raises(IncompleteChecklistError) as exc:
            approve_and_advance_revision(project.id, CLIENT_ID)
        assert len(exc.value.incomplete_ids) == 2
        db.session.rollback()

        project = db.session.get(Project, project.id)
        assert project.current_revision_number == 1
        assert project.remaining_modification_count == 3
        assert RevisionArchive.query.count() == 0
        assert db.session.get(Feedback, fb.id).archived_at is None
        assert RevisionChecklistItem.query.filter(RevisionChecklistItem.archived_at.isnot(None)).count() == 0

    def test_budget_exhausted(self):
        project = make_project(total=1)
        approve_and_advance_revision(project.id)
        with pytest.raises(BudgetExhaustedError):
            approve_and_advance_revision(project.id)
        db.session.rollback()
        assert db.session.get(Project, project.id).current_revision_number == 2
        assert RevisionArchive.query.count() == 1

    def test_zero_budget_project(self):
        project = make_project(total=0)
        with pytest.raises(BudgetExhaustedError):
            approve_and_advance_revision(project.id)

    def test_missing_archive(self, project):
        with pytest.raises(NotFoundError):
            get_revision_archive(project.id, 7)
