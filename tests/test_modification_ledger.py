"""
Counter Ledger tests: saturating deduct/restore, tracker read model,
additional-cost decision.
"""

import pytest

from conftest import make_approved_request, make_project, make_request

from revision_portal.core.exceptions import NotFoundError
from revision_portal.models import db
from revision_portal.models.audit import AuditEntry
from revision_portal.services import modification_ledger as ledger
from revision_portal.services.modification_service import (
    complete_modification_request,
    reject_modification_request,
)


class TestDeductRestore:
    def test_deduct_decrements(self, project):
        events = []
        ledger.deduct(project, events)
        assert project.remaining_modification_count == 2
        assert [e.event_type for e in events] == ["ledger.deducted"]

    def test_deduct_floors_at_zero(self):
        project = make_project(total=1)
        ledger.deduct(project)
        ledger.deduct(project)
        ledger.deduct(project)
        assert project.remaining_modification_count == 0

    def test_exhausted_fires_only_on_one_to_zero(self):
        project = make_project(total=2)
        first, second, third = [], [], []
        ledger.deduct(project, first)
        ledger.deduct(project, second)
        ledger.deduct(project, third)
        assert "ledger.exhausted" not in [e.event_type for e in first]
        assert [e.event_type for e in second] == ["ledger.deducted", "ledger.exhausted"]
        assert third == []

    def test_restore_caps_at_total(self, project):
        events = []
        ledger.restore(project, events)
        assert project.remaining_modification_count == 3
        assert events == []

    def test_restore_after_deduct(self, project):
        ledger.deduct(project)
        events = []
        ledger.restore(project, events)
        assert project.remaining_modification_count == 3
        assert [e.event_type for e in events] == ["ledger.restored"]

    def test_deduct_writes_audit_row(self, project):
        ledger.deduct(project, actor="client-1")
        db.session.commit()
        row = AuditEntry.query.filter_by(action="project.deduct").one()
        assert row.diff == {"remaining_modification_count": {"old": 3, "new": 2}}
        assert row.actor == "client-1"

    def test_lock_project_missing(self):
        with pytest.raises(NotFoundError):
            ledger.lock_project(9999)


class TestTracker:
    def test_fresh_project(self, project):
        tracker = ledger.compute_tracker(project.id)
        assert tracker.total_allowed == 3
        assert tracker.used == 0
        assert tracker.in_progress == 0
        assert tracker.remaining == 3

    def test_conservation(self, project):
        done = make_approved_request(project.id, feedback_ids=["1"])
        complete_modification_request(done.id, "designer-1")
        make_approved_request(project.id, feedback_ids=["2"])
        make_request(project.id, feedback_ids=["3"])

        tracker = ledger.compute_tracker(project.id)
        assert tracker.used == 1
        assert tracker.in_progress == 1
        assert tracker.remaining == 1
        assert tracker.used + tracker.in_progress + tracker.remaining == tracker.total_allowed

    def test_additional_cost_requests_excluded(self):
        project = make_project(total=1)
        make_approved_request(project.id, feedback_ids=["1"])
        extra = make_approved_request(project.id, feedback_ids=["2"])
        assert extra.is_additional_cost is True
        complete_modification_request(extra.id, "designer-1")

        tracker = ledger.compute_tracker(project.id)
        assert tracker.in_progress == 1
        assert tracker.used == 0
        assert len(tracker.additional_requests) == 1
        assert tracker.total_additional_cost == 100000.0

    def test_rejected_requests_do_not_count(self, project):
        mr = make_request(project.id)
        reject_modification_request(mr.id, "Out of scope", "designer-1")
        tracker = ledger.compute_tracker(project.id)
        assert tracker.used == 0
        assert tracker.in_progress == 0
        assert tracker.remaining == 3
        assert tracker.available_budget == 3

    def test_to_dict(self, project):
        data = ledger.compute_tracker(project.id).to_dict()
        assert data["project_id"] == project.id
        assert data["requests"] == []
        assert data["last_updated"] is not None


class TestAdditionalCost:
    def test_free_while_budget_left(self, project):
        cost = ledger.calculate_additional_cost(project.id, "urgent")
        assert cost["is_additional_cost"] is False
        assert cost["amount"] is None
        assert cost["available_budget"] == 3

    def test_default_fee_when_exhausted(self):
        project = make_project(total=0)
        cost = ledger.calculate_additional_cost(project.id, "normal")
        assert cost["is_additional_cost"] is True
        assert cost["amount"] == 100000.0

    def test_urgent_multiplier(self):
        project = make_project(total=0)
        cost = ledger.calculate_additional_cost(project.id, "urgent")
        assert cost["amount"] == 150000.0
        assert cost["multiplier"] == 1.5

    def test_project_fee_overrides_default(self):
        project = make_project(total=0, fee=2500)
        cost = ledger.calculate_additional_cost(project.id, "urgent")
        assert cost["base_fee"] == 2500.0
        assert cost["amount"] == 3750.0
