"""initial_revision_portal_schema

Create projects, modification lifecycle, revision surface, archive,
notification and audit tables.

Revision ID: a1c4e2f9d301
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c4e2f9d301"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _project_fk(ondelete="CASCADE"):
    return sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete=ondelete)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("client_id", sa.String(length=100), nullable=True),
            sa.Column("designer_id", sa.String(length=100), nullable=True),
            sa.Column("total_modification_count", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("remaining_modification_count", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("additional_modification_fee", sa.Numeric(12, 2), nullable=True),
            sa.Column("current_revision_number", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("version_id", sa.Integer(), nullable=False),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "remaining_modification_count >= 0",
                name="ck_projects_remaining_non_negative",
            ),
        )
        op.create_index("ix_projects_client_id", "projects", ["client_id"])
        op.create_index("ix_projects_designer_id", "projects", ["designer_id"])

    if "modification_requests" not in existing_tables:
        op.create_table(
            "modification_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("request_number", sa.Integer(), nullable=False),
            sa.Column("feedback_ids", sa.JSON(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("urgency", sa.String(length=10), nullable=False, server_default="normal"),
            sa.Column("is_additional_cost", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("additional_cost_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("requested_by", sa.String(length=100), nullable=False),
            _ts("requested_at", nullable=False),
            sa.Column("approved_by", sa.String(length=100), nullable=True),
            _ts("approved_at"),
            _ts("rejected_at"),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            _ts("completed_at"),
            sa.Column("actual_completion_date", sa.Date(), nullable=True),
            sa.Column("estimated_completion_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _ts("updated_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "request_number", name="uq_modification_request_number"),
            sa.CheckConstraint(
                "status IN ('pending','clarification_needed','approved',"
                "'in_progress','completed','rejected')",
                name="ck_modification_request_status",
            ),
            sa.CheckConstraint("urgency IN ('normal','urgent')", name="ck_modification_request_urgency"),
            sa.CheckConstraint(
                "NOT (approved_at IS NOT NULL AND rejected_at IS NOT NULL)",
                name="ck_modification_request_single_decision",
            ),
        )
        op.create_index("ix_modification_requests_project_id", "modification_requests", ["project_id"])

    if "clarification_requests" not in existing_tables:
        op.create_table(
            "clarification_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("modification_request_id", sa.Integer(), nullable=False),
            sa.Column("feedback_id", sa.String(length=64), nullable=True),
            sa.Column("question", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("requested_by", sa.String(length=100), nullable=False),
            _ts("requested_at", nullable=False),
            sa.Column("response", sa.Text(), nullable=True),
            sa.Column("answered_by", sa.String(length=100), nullable=True),
            _ts("answered_at"),
            sa.Column("resolved_by", sa.String(length=100), nullable=True),
            _ts("resolved_at"),
            sa.ForeignKeyConstraint(
                ["modification_request_id"], ["modification_requests.id"], ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','answered','resolved')",
                name="ck_clarification_request_status",
            ),
        )
        op.create_index(
            "ix_clarification_requests_modification_request_id",
            "clarification_requests", ["modification_request_id"],
        )

    if "work_progress" not in existing_tables:
        op.create_table(
            "work_progress",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("modification_request_id", sa.Integer(), nullable=False),
            sa.Column("overall_progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("estimated_completion", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not_started"),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            _ts("created_at"),
            _ts("last_updated"),
            sa.ForeignKeyConstraint(
                ["modification_request_id"], ["modification_requests.id"], ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("modification_request_id"),
            sa.CheckConstraint("overall_progress BETWEEN 0 AND 100", name="ck_work_progress_range"),
            sa.CheckConstraint(
                "status IN ('not_started','in_progress','completed')",
                name="ck_work_progress_status",
            ),
        )

    if "work_checklist_items" not in existing_tables:
        op.create_table(
            "work_checklist_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("work_progress_id", sa.Integer(), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=20), nullable=False, server_default="design"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("estimated_hours", sa.Float(), nullable=True),
            sa.Column("assigned_to", sa.String(length=100), nullable=True),
            sa.Column("dependencies", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
            _ts("started_at"),
            _ts("completed_at"),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(["work_progress_id"], ["work_progress.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('pending','in_progress','completed')",
                name="ck_work_checklist_item_status",
            ),
            sa.CheckConstraint(
                "category IN ('design','development','review','delivery','other')",
                name="ck_work_checklist_item_category",
            ),
            sa.CheckConstraint(
                "priority IN ('low','medium','high','critical')",
                name="ck_work_checklist_item_priority",
            ),
            sa.CheckConstraint(
                "progress_percentage BETWEEN 0 AND 100",
                name="ck_work_checklist_item_progress",
            ),
        )
        op.create_index(
            "ix_work_checklist_items_work_progress_id", "work_checklist_items", ["work_progress_id"],
        )

    if "work_attachments" not in existing_tables:
        op.create_table(
            "work_attachments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("checklist_item_id", sa.Integer(), nullable=False),
            sa.Column("file_name", sa.String(length=300), nullable=False),
            sa.Column("file_url", sa.String(length=1000), nullable=False),
            sa.Column("file_type", sa.String(length=100), nullable=True),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("uploaded_by", sa.String(length=100), nullable=True),
            _ts("uploaded_at"),
            sa.ForeignKeyConstraint(["checklist_item_id"], ["work_checklist_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_work_attachments_checklist_item_id", "work_attachments", ["checklist_item_id"])

    if "modification_history" not in existing_tables:
        op.create_table(
            "modification_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("modification_request_id", sa.Integer(), nullable=False),
            sa.Column("request_number", sa.Integer(), nullable=False),
            sa.Column("is_additional_cost", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("additional_cost_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("completed_by", sa.String(length=100), nullable=True),
            sa.Column("cascaded", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("completed_at", nullable=False),
            _project_fk(),
            sa.ForeignKeyConstraint(
                ["modification_request_id"], ["modification_requests.id"], ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("modification_request_id"),
        )
        op.create_index("ix_modification_history_project_id", "modification_history", ["project_id"])

    # ── Revision surface ─────────────────────────────────────────────────
    if "feedback" not in existing_tables:
        op.create_table(
            "feedback",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.String(length=64), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("category", sa.String(length=20), nullable=False, server_default="design"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("comments", sa.JSON(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=False),
            _ts("created_at"),
            sa.Column("revision_number", sa.Integer(), nullable=False, server_default="1"),
            _ts("archived_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_feedback_project_id", "feedback", ["project_id"])
        op.create_index("ix_feedback_archived_at", "feedback", ["archived_at"])

    if "image_markups" not in existing_tables:
        op.create_table(
            "image_markups",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("version_ref", sa.String(length=64), nullable=True),
            sa.Column("x", sa.Float(), nullable=False),
            sa.Column("y", sa.Float(), nullable=False),
            sa.Column("markup_type", sa.String(length=20), nullable=False, server_default="point"),
            sa.Column("number", sa.Integer(), nullable=False),
            sa.Column("color", sa.String(length=20), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=False),
            _ts("created_at"),
            sa.Column("revision_number", sa.Integer(), nullable=False, server_default="1"),
            _ts("archived_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_image_markups_project_id", "image_markups", ["project_id"])
        op.create_index("ix_image_markups_archived_at", "image_markups", ["archived_at"])

    if "markup_feedback" not in existing_tables:
        op.create_table(
            "markup_feedback",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("markup_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=20), nullable=False, server_default="design"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("comments", sa.JSON(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=False),
            _ts("created_at"),
            sa.Column("revision_number", sa.Integer(), nullable=False, server_default="1"),
            _ts("archived_at"),
            _project_fk(),
            sa.ForeignKeyConstraint(["markup_id"], ["image_markups.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_markup_feedback_project_id", "markup_feedback", ["project_id"])
        op.create_index("ix_markup_feedback_markup_id", "markup_feedback", ["markup_id"])
        op.create_index("ix_markup_feedback_archived_at", "markup_feedback", ["archived_at"])

    if "revision_checklist_items" not in existing_tables:
        op.create_table(
            "revision_checklist_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("item_type", sa.String(length=20), nullable=False, server_default="manual"),
            sa.Column("source_id", sa.Integer(), nullable=True),
            sa.Column("is_revision_header", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("completed_at"),
            sa.Column("comments", sa.JSON(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            _ts("created_at"),
            sa.Column("revision_number", sa.Integer(), nullable=False, server_default="1"),
            _ts("archived_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_revision_checklist_items_project_id", "revision_checklist_items", ["project_id"])
        op.create_index("ix_revision_checklist_items_archived_at", "revision_checklist_items", ["archived_at"])

    if "revision_archives" not in existing_tables:
        op.create_table(
            "revision_archives",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("revision_number", sa.Integer(), nullable=False),
            sa.Column("markups", sa.JSON(), nullable=False),
            sa.Column("markup_feedback", sa.JSON(), nullable=False),
            sa.Column("general_feedback", sa.JSON(), nullable=False),
            sa.Column("checklist_items", sa.JSON(), nullable=False),
            sa.Column("archived_by", sa.String(length=100), nullable=True),
            _ts("archived_at", nullable=False),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "revision_number", name="uq_revision_archive_number"),
        )
        op.create_index("ix_revision_archives_project_id", "revision_archives", ["project_id"])

    # ── Notifications & audit ────────────────────────────────────────────
    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("recipient", sa.String(length=150), nullable=False),
            sa.Column("event_type", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            _ts("read_at"),
            _ts("created_at"),
            _project_fk(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])
        op.create_index("ix_notifications_event_type", "notifications", ["event_type"])

    if "audit_entries" not in existing_tables:
        op.create_table(
            "audit_entries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False),
            sa.Column("changes", sa.JSON(), nullable=False),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            _ts("occurred_at", nullable=False),
            _project_fk(ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_entries_project_id", "audit_entries", ["project_id"])
        op.create_index("ix_audit_entries_action", "audit_entries", ["action"])
        op.create_index("ix_audit_entries_subject", "audit_entries", ["entity_type", "entity_id"])


_TABLES_IN_DROP_ORDER = (
    "audit_entries",
    "notifications",
    "revision_archives",
    "revision_checklist_items",
    "markup_feedback",
    "image_markups",
    "feedback",
    "modification_history",
    "work_attachments",
    "work_checklist_items",
    "work_progress",
    "clarification_requests",
    "modification_requests",
    "projects",
)


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in _TABLES_IN_DROP_ORDER:
        if table in existing_tables:
            op.drop_table(table)
