"""
Work-Progress Tracker tests: checklist seeding, item patch rules,
dependency guard, rollup, milestone notifications and the completion cascade.
"""

import pytest

from conftest import DESIGNER_ID, make_approved_request, make_request

from revision_portal.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from revision_portal.models import db
from revision_portal.models.modification import ModificationHistory, ModificationRequest
from revision_portal.services import work_progress_service as work


ITEMS = [
    {"title": "Sketch", "category": "design", "priority": "high", "estimated_hours": 2},
    {"title": "Build", "category": "development", "dependencies": ["Sketch"]},
    {"title": "Review", "category": "review", "dependencies": [1]},
]


def _started(project_id, items=None):
    mr = make_approved_request(project_id)
    wp = work.create_work_progress(mr.id, items or ITEMS, created_by=DESIGNER_ID)
    return mr, wp


def _item_ids(wp):
    return [i.id for i in wp.checklist_items]


class TestCreate:
    def test_seeds_items_and_starts_request(self, project, notifier):
        mr, wp = _started(project.id)
        assert mr.status == "in_progress"
        assert wp.status == "not_started"
        assert wp.overall_progress == 0
        assert [i.title for i in wp.checklist_items] == ["Sketch", "Build", "Review"]
        assert all(i.status == "pending" and i.progress_percentage == 0 for i in wp.checklist_items)
        assert len(notifier.events("work.started")) == 1

    def test_dependencies_resolved_to_ids(self, project):
        _, wp = _started(project.id)
        sketch, build, review = wp.checklist_items
        assert build.dependencies == [sketch.id]
        assert review.dependencies == [build.id]

    def test_requires_approved_request(self, project):
        mr = make_request(project.id)
        with pytest.raises(InvalidStateError):
            work.create_work_progress(mr.id, ITEMS)

    def test_only_once(self, project):
        mr, _ = _started(project.id)
        with pytest.raises(InvalidStateError):
            work.create_work_progress(mr.id, ITEMS)

    def test_empty_items(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(ValidationError):
            work.create_work_progress(mr.id, [])

    def test_invalid_category(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(ValidationError):
            work.create_work_progress(mr.id, [{"title": "X", "category": "marketing"}])

    def test_unknown_dependency(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(ValidationError):
            work.create_work_progress(mr.id, [{"title": "X", "dependencies": ["Nope"]}])

    def test_dependency_cycle(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(ValidationError):
            work.create_work_progress(mr.id, [
                {"title": "A", "dependencies": ["B"]},
                {"title": "B", "dependencies": ["A"]},
            ])

    def test_self_dependency(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(ValidationError):
            work.create_work_progress(mr.id, [{"title": "A", "dependencies": [0]}])

    def test_get_missing_work_progress(self, project):
        mr = make_approved_request(project.id)
        with pytest.raises(NotFoundError):
            work.get_work_progress(mr.id)


class TestItemUpdates:
    def test_in_progress_stamps_started_at(self, project):
        mr, wp = _started(project.id)
        sketch_id = _item_ids(wp)[0]
        work.update_checklist_item(mr.id, sketch_id, {"status": "in_progress", "progress_percentage": 40})
        sketch = wp.checklist_items[0]
        assert sketch.status == "in_progress"
        assert sketch.started_at is not None
        assert sketch.progress_percentage == 40
        assert wp.status == "in_progress"

    def test_progress_on_pending_moves_to_in_progress(self, project):
        mr, wp = _started(project.id)
        work.update_checklist_item(mr.id, _item_ids(wp)[0], {"progress_percentage": 10})
        assert wp.checklist_items[0].status == "in_progress"

    def test_progress_100_means_completed(self, project):
        mr, wp = _started(project.id)
        work.update_checklist_item(mr.id, _item_ids(wp)[0], {"progress_percentage": 100})
        sketch = wp.checklist_items[0]
        assert sketch.status == "completed"
        assert sketch.completed_at is not None

    def test_completed_forces_100(self, project):
        mr, wp = _started(project.id)
        work.update_checklist_item(mr.id, _item_ids(wp)[0], {"status": "completed"})
        assert wp.checklist_items[0].progress_percentage == 100
        assert wp.overall_progress == 33

    def test_back_to_pending_resets_progress(self, project):
        mr, wp = _started(project.id)
        sketch_id = _item_ids(wp)[0]
        work.update_checklist_item(mr.id, sketch_id, {"progress_percentage": 50})
        work.update_checklist_item(mr.id, sketch_id, {"status": "pending"})
        assert wp.checklist_items[0].progress_percentage == 0
        assert wp.status == "not_started"

    def test_completed_item_is_final(self, project):
        mr, wp = _started(project.id)
        sketch_id = _item_ids(wp)[0]
        work.update_checklist_item(mr.id, sketch_id, {"status": "completed"})
        with pytest.raises(InvalidStateError):
            work.update_checklist_item(mr.id, sketch_id, {"status": "in_progress"})
        db.session.rollback()
        with pytest.raises(InvalidStateError):
            work.update_checklist_item(mr.id, sketch_id, {"progress_percentage": 60})

    def test_dependency_guard(self, project):
        mr, wp = _started(project.id)
        build_id = _item_ids(wp)[1]
        with pytest.raises(InvalidStateError) as exc:
            work.update_checklist_item(mr.id, build_id, {"status": "in_progress"})
        assert "dependencies" in str(exc.value)

    def test_progress_out_of_range(self, project):
        mr, wp = _started(project.id)
        with pytest.raises(ValidationError):
            work.update_checklist_item(mr.id, _item_ids(wp)[0], {"progress_percentage": 120})

    def test_fractional_progress_rejected(self, project):
        mr, wp = _started(project.id)
        with pytest.raises(ValidationError):
            work.update_checklist_item(mr.id, _item_ids(wp)[0], {"progress_percentage": 99.9})
        assert wp.checklist_items[0].progress_percentage == 0

    def test_whole_float_progress_accepted(self, project):
        mr, wp = _started(project.id)
        work.update_checklist_item(mr.id, _item_ids(wp)[0], {"progress_percentage": 50.0})
        assert wp.checklist_items[0].progress_percentage == 50

    def test_unsupported_field(self, project):
        mr, wp = _started(project.id)
        with pytest.raises(ValidationError):
            work.update_checklist_item(mr.id, _item_ids(wp)[0], {"sort_order": 5})

    def test_metadata_update(self, project):
        mr, wp = _started(project.id)
        work.update_checklist_item(mr.id, _item_ids(wp)[0], {"assigned_to": "designer-2", "priority": "critical"})
        sketch = wp.checklist_items[0]
        assert sketch.assigned_to == "designer-2"
        assert sketch.priority == "critical"
        assert sketch.status == "pending"

    def test_item_of_other_request(self, project):
        mr_a, wp_a = _started(project.id, [{"title": "A"}])
        mr_b, wp_b = _started(project.id, [{"title": "B"}])
        with pytest.raises(NotFoundError):
            work.update_checklist_item(mr_a.id, _item_ids(wp_b)[0], {"status": "completed"})


class TestRollupAndCascade:
    def test_rounding(self, project):
        mr, wp = _started(project.id, [{"title": "A"}, {"title": "B"}])
        a_id, _ = _item_ids(wp)
        work.update_checklist_item(mr.id, a_id, {"progress_percentage": 45})
        assert wp.overall_progress == 23

    def test_last_item_completes_request(self, project, notifier):
        mr, wp = _started(project.id)
        for item_id in _item_ids(wp):
            work.update_checklist_item(mr.id, item_id, {"status": "completed"}, DESIGNER_ID)

        mr = db.session.get(ModificationRequest, mr.id)
        assert wp.status == "completed"
        assert wp.overall_progress == 100
        assert mr.status == "completed"
        assert mr.completed_at is not None

        history = ModificationHistory.query.filter_by(modification_request_id=mr.id).one()
        assert history.cascaded is True
        assert len(notifier.events("work.completed")) == 1
        assert len(notifier.events("modification.completed")) == 2  # client + designer

    def test_updates_after_completion_rejected(self, project):
        mr, wp = _started(project.id, [{"title": "Only"}])
        only_id = _item_ids(wp)[0]
        work.update_checklist_item(mr.id, only_id, {"status": "completed"})
        with pytest.raises(InvalidStateError):
            work.update_checklist_item(mr.id, only_id, {"title": "Renamed"})

    def test_manual_completion_freezes_checklist(self, project):
        from revision_portal.services.modification_service import complete_modification_request

        mr, wp = _started(project.id, [{"title": "Only"}])
        complete_modification_request(mr.id, DESIGNER_ID)
        with pytest.raises(InvalidStateError):
            work.update_checklist_item(mr.id, _item_ids(wp)[0], {"status": "completed"})

    def test_milestone_notifications(self, project, notifier):
        mr, wp = _started(project.id, [{"title": "A"}, {"title": "B"}])
        a_id, b_id = _item_ids(wp)

        work.update_checklist_item(mr.id, a_id, {"progress_percentage": 20})   # 10%
        assert notifier.events("work.updated") == []

        work.update_checklist_item(mr.id, a_id, {"progress_percentage": 60})   # 30%
        work.update_checklist_item(mr.id, a_id, {"progress_percentage": 70})   # 35%
        milestones = [ctx["milestone"] for _, _, ctx in notifier.events("work.updated")]
        assert milestones == [25]

        work.update_checklist_item(mr.id, b_id, {"progress_percentage": 90})   # 80%
        milestones = [ctx["milestone"] for _, _, ctx in notifier.events("work.updated")]
        assert milestones == [25, 75]


class TestAttachments:
    def test_add_attachment(self, project):
        mr, wp = _started(project.id)
        attachment = work.add_attachment(mr.id, _item_ids(wp)[0], {
            "file_name": "header-v2.png",
            "file_url": "https://files.example.com/header-v2.png",
            "file_type": "image/png",
            "file_size": 2048,
        }, DESIGNER_ID)
        assert attachment.id is not None
        assert wp.checklist_items[0].attachments[0].file_name == "header-v2.png"

    def test_attachment_requires_url(self, project):
        mr, wp = _started(project.id)
        with pytest.raises(ValidationError):
            work.add_attachment(mr.id, _item_ids(wp)[0], {"file_name": "x.png"})
