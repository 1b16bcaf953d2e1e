"""
Clarification sub-workflow tests.

    ClarificationRequest:  pending ──▶ answered ──▶ resolved
    ModificationRequest:   pending ──▶ clarification_needed ──(reconcile)──▶ pending
"""

import pytest

from conftest import CLIENT_ID, DESIGNER_ID, make_approved_request, make_request

from revision_portal.core.exceptions import (
    ClarificationPendingError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from revision_portal.services import clarification_service as clar_svc
from revision_portal.services import modification_service as mods


def _answered(mr_id, question="Which logo variant?"):
    clar = clar_svc.request_clarification(mr_id, "1", question, DESIGNER_ID)
    clar_svc.respond_to_clarification(clar.id, "The dark one", CLIENT_ID)
    return clar


class TestRequestClarification:
    def test_parks_parent(self, project):
        mr = make_request(project.id, feedback_ids=["1"])
        clar = clar_svc.request_clarification(mr.id, "1", "Which logo variant?", DESIGNER_ID)
        assert clar.status == "pending"
        assert clar.feedback_id == "1"
        assert mr.status == "clarification_needed"

    def test_many_questions_one_transition(self, project, notifier):
        mr = make_request(project.id, feedback_ids=["1", "2"])
        created = clar_svc.request_clarifications(mr.id, [
            {"feedback_id": "1", "question": "Which logo?"},
            {"feedback_id": "2", "question": "Which font?"},
        ], DESIGNER_ID)
        assert len(created) == 2
        assert len(notifier.events("clarification.requested")) == 1
        assert notifier.events("clarification.requested")[0][1] == CLIENT_ID

    def test_empty_question(self, project):
        mr = make_request(project.id)
        with pytest.raises(ValidationError):
            clar_svc.request_clarification(mr.id, "1", "  ", DESIGNER_ID)

    def test_only_from_pending(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(InvalidStateError):
            clar_svc.request_clarification(mr.id, "1", "Too late?", DESIGNER_ID)

    def test_not_while_clarification_needed(self, project):
        mr = make_request(project.id)
        clar_svc.request_clarification(mr.id, "1", "First?", DESIGNER_ID)
        with pytest.raises(InvalidStateError):
            clar_svc.request_clarification(mr.id, "1", "Second?", DESIGNER_ID)

    def test_missing_request(self):
        with pytest.raises(NotFoundError):
            clar_svc.request_clarification(999, "1", "Anyone?", DESIGNER_ID)


class TestRespondResolve:
    def test_respond(self, project, notifier):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        assert clar.status == "answered"
        assert clar.response == "The dark one"
        assert clar.answered_at is not None
        assert notifier.events("clarification.answered")[0][1] == DESIGNER_ID

    def test_empty_response(self, project):
        mr = make_request(project.id)
        clar = clar_svc.request_clarification(mr.id, "1", "Which?", DESIGNER_ID)
        with pytest.raises(ValidationError):
            clar_svc.respond_to_clarification(clar.id, "", CLIENT_ID)

    def test_resolve_requires_answer(self, project):
        mr = make_request(project.id)
        clar = clar_svc.request_clarification(mr.id, "1", "Which?", DESIGNER_ID)
        with pytest.raises(InvalidStateError):
            clar_svc.resolve_clarification(clar.id, DESIGNER_ID)

    def test_respond_twice(self, project):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        with pytest.raises(InvalidStateError):
            clar_svc.respond_to_clarification(clar.id, "Changed", CLIENT_ID)

    def test_resolve_does_not_move_parent(self, project):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        clar_svc.resolve_clarification(clar.id, DESIGNER_ID)
        assert clar.status == "resolved"
        assert mr.status == "clarification_needed"

    def test_resolved_is_final(self, project):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        clar_svc.resolve_clarification(clar.id, DESIGNER_ID)
        with pytest.raises(InvalidStateError):
            clar_svc.resolve_clarification(clar.id, DESIGNER_ID)


class TestReconcileAndApprovalGate:
    def test_reconcile_after_all_resolved(self, project):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        clar_svc.resolve_clarification(clar.id, DESIGNER_ID)
        clar_svc.reconcile_clarifications(mr.id, DESIGNER_ID)
        assert mr.status == "pending"

    def test_reconcile_noop_while_open(self, project):
        mr = make_request(project.id)
        _answered(mr.id)
        clar_svc.reconcile_clarifications(mr.id, DESIGNER_ID)
        assert mr.status == "clarification_needed"

    def test_reconcile_noop_on_pending(self, project):
        mr = make_request(project.id)
        assert clar_svc.reconcile_clarifications(mr.id).status == "pending"

    def test_approval_blocked_by_unresolved(self, project):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        with pytest.raises(ClarificationPendingError) as exc:
            mods.approve_modification_request(mr.id, DESIGNER_ID)
        assert exc.value.open_ids == [clar.id]

    def test_approve_after_reconcile(self, project):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        clar_svc.resolve_clarification(clar.id, DESIGNER_ID)
        clar_svc.reconcile_clarifications(mr.id)
        mods.approve_modification_request(mr.id, DESIGNER_ID)
        assert mr.status == "approved"

    def test_resolved_but_not_reconciled_cannot_approve(self, project):
        mr = make_request(project.id)
        clar = _answered(mr.id)
        clar_svc.resolve_clarification(clar.id, DESIGNER_ID)
        with pytest.raises(InvalidStateError):
            mods.approve_modification_request(mr.id, DESIGNER_ID)

    def test_available_actions_hide_approve(self, project):
        mr = make_request(project.id)
        _answered(mr.id)
        assert mods.get_available_actions(mr) == []

    def test_list(self, project):
        mr = make_request(project.id)
        clar_svc.request_clarifications(mr.id, [{"question": "A?"}, {"question": "B?"}], DESIGNER_ID)
        assert [c.question for c in clar_svc.list_clarifications(mr.id)] == ["A?", "B?"]
