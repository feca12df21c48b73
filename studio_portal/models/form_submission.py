"""
Studio Portal: form submission model.

One row per (project, phase, module). Resubmitting the same module in the
same phase overwrites the payload and bumps ``updated_at``.
"""

from datetime import datetime, timezone

from studio_portal.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class FormSubmission(db.Model):
    __tablename__ = "form_submissions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase_key = db.Column(db.String(10), nullable=False)
    module_id = db.Column(db.String(64), nullable=False, comment="Form module, e.g. intake_base")
    payload = db.Column(db.JSON, nullable=False, default=dict)
    submitted_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("project_id", "phase_key", "module_id", name="uq_form_submission_module"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_key": self.phase_key,
            "module_id": self.module_id,
            "data": self.payload or {},
            "submitted_by": self.submitted_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<FormSubmission project={self.project_id} {self.phase_key}/{self.module_id}>"
