"""
Modification Request state machine tests (service layer).

    pending ──▶ clarification_needed ──▶ pending
    pending ──▶ approved ──▶ in_progress ──▶ completed
    approved ──▶ completed
    pending ──▶ rejected

Also covers creation rules (numbering, bundling, additional cost), history
rows and the end-to-end budget walk-through.
"""

import pytest

from conftest import CLIENT_ID, DESIGNER_ID, make_approved_request, make_project, make_request

from revision_portal.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from revision_portal.models import db
from revision_portal.models.modification import ModificationHistory, ModificationRequest
from revision_portal.models.project import Project
from revision_portal.services import modification_ledger as ledger
from revision_portal.services import modification_service as mods
from revision_portal.services import work_progress_service as work
from revision_portal.services.revision_surface import add_feedback


def _remaining(project_id):
    db.session.expire_all()
    return db.session.get(Project, project_id).remaining_modification_count


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


class TestCreate:
    def test_free_request_deducts(self, project):
        mr = make_request(project.id, feedback_ids=["1", "2"])
        assert mr.status == "pending"
        assert mr.request_number == 1
        assert mr.is_additional_cost is False
        assert mr.feedback_ids == ["1", "2"]
        assert _remaining(project.id) == 2

    def test_request_numbers_are_sequential(self, project):
        numbers = [make_request(project.id).request_number for _ in range(3)]
        assert numbers == [1, 2, 3]

    def test_request_number_not_reused_after_rejection(self, project):
        first = make_request(project.id)
        mods.reject_modification_request(first.id, "Duplicate", DESIGNER_ID)
        second = make_request(project.id)
        assert second.request_number == 2

    def test_feedback_ids_normalised_to_strings(self, project):
        mr = make_request(project.id, feedback_ids=[7, "7", 8])
        assert mr.feedback_ids == ["7", "8"]

    def test_invalid_urgency(self, project):
        with pytest.raises(ValidationError):
            mods.create_modification_request(project.id, {"urgency": "asap"}, CLIENT_ID)

    def test_feedback_ids_must_be_list(self, project):
        with pytest.raises(ValidationError):
            mods.create_modification_request(project.id, {"feedback_ids": "1,2"}, CLIENT_ID)

    def test_feedback_already_bundled(self, project):
        make_request(project.id, feedback_ids=["1", "2"])
        with pytest.raises(ValidationError) as exc:
            make_request(project.id, feedback_ids=["2", "3"])
        assert exc.value.details == {"feedback_ids": ["2"]}
        db.session.rollback()
        assert _remaining(project.id) == 2

    def test_feedback_freed_by_rejection(self, project):
        mr = make_request(project.id, feedback_ids=["1"])
        mods.reject_modification_request(mr.id, "Not now", DESIGNER_ID)
        again = make_request(project.id, feedback_ids=["1"])
        assert again.feedback_ids == ["1"]

    def test_exhausted_budget_makes_additional_cost(self):
        project = make_project(total=1)
        make_request(project.id)
        extra = make_request(project.id, urgency="urgent")
        assert extra.is_additional_cost is True
        assert float(extra.additional_cost_amount) == 150000.0
        assert _remaining(project.id) == 0

    def test_missing_project(self):
        with pytest.raises(NotFoundError):
            make_request(4242)

    def test_bad_estimated_date(self, project):
        with pytest.raises(ValidationError):
            mods.create_modification_request(
                project.id, {"estimated_completion_date": "next week"}, CLIENT_ID,
            )

    def test_submitted_event_to_designer(self, project, notifier):
        make_request(project.id)
        assert [r for _, r, _ in notifier.events("modification.submitted")] == [DESIGNER_ID]
        assert [r for _, r, _ in notifier.events("ledger.deducted")] == [CLIENT_ID]


# ═════════════════════════════════════════════════════════════════════════════
# Approve / reject
# ═════════════════════════════════════════════════════════════════════════════


class TestApproveReject:
    def test_approve(self, project):
        mr = make_request(project.id)
        mods.approve_modification_request(mr.id, DESIGNER_ID, notes="Looks clear")
        assert mr.status == "approved"
        assert mr.approved_by == DESIGNER_ID
        assert mr.approved_at is not None
        assert mr.notes == "Looks clear"

    def test_approve_twice_rejected(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(InvalidStateError) as exc:
            mods.approve_modification_request(mr.id, DESIGNER_ID)
        assert exc.value.current_status == "approved"

    def test_reject_restores_budget(self, project):
        mr = make_request(project.id)
        assert _remaining(project.id) == 2
        mods.reject_modification_request(mr.id, "Out of scope", DESIGNER_ID)
        assert mr.status == "rejected"
        assert mr.rejection_reason == "Out of scope"
        assert mr.rejected_at is not None
        assert _remaining(project.id) == 3

    def test_reject_additional_cost_keeps_budget(self):
        project = make_project(total=1)
        make_request(project.id)
        extra = make_request(project.id)
        mods.reject_modification_request(extra.id, "Too expensive", DESIGNER_ID)
        assert _remaining(project.id) == 0

    def test_reject_requires_reason(self, project):
        mr = make_request(project.id)
        with pytest.raises(ValidationError):
            mods.reject_modification_request(mr.id, "   ", DESIGNER_ID)

    def test_reject_approved_request(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(InvalidStateError):
            mods.reject_modification_request(mr.id, "Changed my mind", DESIGNER_ID)
        db.session.rollback()
        assert _remaining(project.id) == 2

    def test_rejected_is_terminal(self, project):
        mr = make_request(project.id)
        mods.reject_modification_request(mr.id, "No", DESIGNER_ID)
        with pytest.raises(InvalidStateError):
            mods.approve_modification_request(mr.id, DESIGNER_ID)


# ═════════════════════════════════════════════════════════════════════════════
# Completion & history
# ═════════════════════════════════════════════════════════════════════════════


class TestComplete:
    def test_manual_complete_from_approved(self, project):
        mr = make_approved_request(project.id)
        mods.complete_modification_request(mr.id, DESIGNER_ID, actual_completion_date="2026-03-01")
        assert mr.status == "completed"
        assert mr.completed_at is not None
        assert mr.actual_completion_date.isoformat() == "2026-03-01"

    def test_complete_does_not_touch_budget(self, project):
        mr = make_approved_request(project.id)
        before = _remaining(project.id)
        mods.complete_modification_request(mr.id, DESIGNER_ID)
        assert _remaining(project.id) == before

    def test_complete_pending_rejected(self, project):
        mr = make_request(project.id)
        with pytest.raises(InvalidStateError):
            mods.complete_modification_request(mr.id, DESIGNER_ID)

    def test_completed_is_terminal(self, project):
        mr = make_approved_request(project.id)
        mods.complete_modification_request(mr.id, DESIGNER_ID)
        with pytest.raises(InvalidStateError):
            mods.complete_modification_request(mr.id, DESIGNER_ID)

    def test_history_row(self, project):
        mr = make_approved_request(project.id)
        mods.complete_modification_request(mr.id, DESIGNER_ID)
        rows = mods.list_modification_history(project.id)
        assert len(rows) == 1
        assert rows[0].modification_request_id == mr.id
        assert rows[0].cascaded is False
        assert rows[0].completed_by == DESIGNER_ID


# ═════════════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════════════


class TestReadSide:
    def test_list_with_status_filter(self, project):
        make_request(project.id)
        make_approved_request(project.id)
        assert len(mods.list_modification_requests(project.id)) == 2
        approved = mods.list_modification_requests(project.id, "approved")
        assert [r.request_number for r in approved] == [2]

    def test_list_unknown_status(self, project):
        with pytest.raises(ValidationError):
            mods.list_modification_requests(project.id, "archived")

    def test_statistics(self):
        project = make_project(total=1)
        make_request(project.id, urgency="urgent")
        extra = make_request(project.id)
        mods.reject_modification_request(extra.id, "No", DESIGNER_ID)
        stats = mods.get_modification_statistics(project.id)
        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["rejected"] == 1
        assert stats["additional_cost_requests"] == 1
        assert stats["urgent_requests"] == 1

    def test_available_feedback(self, project):
        f1 = add_feedback(project.id, {"content": "Bigger logo", "report_id": "r1"}, CLIENT_ID)
        f2 = add_feedback(project.id, {"content": "New palette", "report_id": "r1"}, CLIENT_ID)
        add_feedback(project.id, {"content": "Footer copy", "report_id": "r2"}, CLIENT_ID)
        make_request(project.id, feedback_ids=[f1.id])

        available = mods.get_available_feedback(project.id, report_id="r1")
        assert [f.id for f in available] == [f2.id]
        assert len(mods.get_available_feedback(project.id)) == 2

    def test_available_actions(self, project):
        mr = make_request(project.id)
        assert set(mods.get_available_actions(mr)) == {"approve", "reject", "request_clarification"}
        mods.approve_modification_request(mr.id, DESIGNER_ID)
        assert set(mods.get_available_actions(mr)) == {"start", "complete"}


# ═════════════════════════════════════════════════════════════════════════════
# End-to-end budget walk-through
# ═════════════════════════════════════════════════════════════════════════════


def test_budget_walkthrough(project):
    """total 3 → submit #1 → reject → submit #2 → approve → complete via checklist."""
    first = make_request(project.id, feedback_ids=["1"])
    assert _remaining(project.id) == 2

    mods.reject_modification_request(first.id, "Needs more detail", DESIGNER_ID)
    assert _remaining(project.id) == 3

    second = make_approved_request(project.id, feedback_ids=["1"])
    wp = work.create_work_progress(second.id, [{"title": "Rework header"}], created_by=DESIGNER_ID)
    work.update_checklist_item(second.id, wp.checklist_items[0].id, {"status": "completed"}, DESIGNER_ID)

    second = db.session.get(ModificationRequest, second.id)
    assert second.status == "completed"
    assert second.completed_at is not None

    tracker = ledger.compute_tracker(project.id)
    assert tracker.used == 1
    assert tracker.remaining == 2
    assert tracker.in_progress == 0
    assert _remaining(project.id) == 2

    # Drive the budget to zero; everything filed afterwards is billed.
    make_request(project.id)
    make_request(project.id)
    assert _remaining(project.id) == 0
    billed = make_request(project.id, urgency="urgent")
    assert billed.is_additional_cost is True
    assert float(billed.additional_cost_amount) == 150000.0
    assert ModificationHistory.query.filter_by(project_id=project.id).count() == 1


def test_audit_trail_records_each_transition(project):
    from revision_portal.models.audit import audit_trail

    mr = make_approved_request(project.id)
    mods.complete_modification_request(mr.id, DESIGNER_ID)
    trail = audit_trail("modification_request", mr.id)
    assert [e.action for e in trail] == [
        "modification_request.create",
        "modification_request.approve",
        "modification_request.complete",
    ]
    assert trail[1].actor == DESIGNER_ID
    assert trail[1].diff["status"] == {"old": "pending", "new": "approved"}
    assert trail[0].request_id is None
