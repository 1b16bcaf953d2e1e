"""
Revision Portal
Project domain model.

Models:
    - Project: a client/designer engagement carrying its revision budget.

The engine treats the project row as its configuration reader
(total_modification_count, additional_modification_fee) and as the single
transactional counter for the revision budget (remaining_modification_count).
"""

from datetime import datetime, timezone

from revision_portal.models import db


class Project(db.Model):
    """
    Client/designer project with a bounded number of revision rounds.

    ``version_id`` is an optimistic-concurrency counter: two sessions that both
    read the row and then write it will not both succeed.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    client_id = db.Column(db.String(100), nullable=True, index=True)
    designer_id = db.Column(db.String(100), nullable=True, index=True)

    # Revision budget
    total_modification_count = db.Column(
        db.Integer, nullable=False, default=3,
        comment="Contracted number of free revision rounds",
    )
    remaining_modification_count = db.Column(
        db.Integer, nullable=False, default=3,
        comment="Transactional budget counter, mutated only by the ledger",
    )
    additional_modification_fee = db.Column(
        db.Numeric(12, 2), nullable=True,
        comment="Base fee for additional-cost requests; NULL means platform default",
    )
    current_revision_number = db.Column(db.Integer, nullable=False, default=1)

    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        db.CheckConstraint(
            "remaining_modification_count >= 0",
            name="ck_projects_remaining_non_negative",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    modification_requests = db.relationship(
        "ModificationRequest", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "client_id": self.client_id,
            "designer_id": self.designer_id,
            "total_modification_count": self.total_modification_count,
            "remaining_modification_count": self.remaining_modification_count,
            "additional_modification_fee": (
                float(self.additional_modification_fee)
                if self.additional_modification_fee is not None else None
            ),
            "current_revision_number": self.current_revision_number,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name[:40]}>"
