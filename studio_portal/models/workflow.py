"""
Studio Portal: phase workflow models.

Models:
    - PhaseRequirement: database mirror of the static requirement catalog
    - RequirementCompletion: one row per (project, requirement); upsert semantics
    - PhaseTransition: append-only history of phase changes

Completion rows are created lazily the first time a requirement is written
for a project. No row means "not completed". Rows are never deleted by the
workflow; un-completing flips ``completed`` and clears who/when.
"""

from datetime import datetime, timezone

from studio_portal.core.requirement_catalog import all_requirements
from studio_portal.models import db

COMPLETION_SOURCES = frozenset({"manual", "form", "payment", "signature", "approval"})


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class PhaseRequirement(db.Model):
    """Seeded copy of a RequirementDefinition; read-only at runtime."""

    __tablename__ = "phase_requirements"

    id = db.Column(db.String(64), primary_key=True, comment="Stable requirement key, e.g. intake_form")
    phase_key = db.Column(db.String(10), nullable=False, index=True)
    requirement_text = db.Column(db.String(255), nullable=False)
    is_mandatory = db.Column(db.Boolean, nullable=False, default=False)
    requirement_type = db.Column(
        db.String(20),
        nullable=False,
        comment="form | document | payment | approval | review | confirm | monitor | download | launch | feedback",
    )
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "phase_key": self.phase_key,
            "requirement_text": self.requirement_text,
            "is_mandatory": self.is_mandatory,
            "requirement_type": self.requirement_type,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<PhaseRequirement {self.phase_key}/{self.id}>"


class RequirementCompletion(db.Model):
    """Completion state of one requirement for one project."""

    __tablename__ = "project_phase_requirement_completions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requirement_id = db.Column(
        db.String(64),
        db.ForeignKey("phase_requirements.id"),
        nullable=False,
    )
    completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_by = db.Column(db.String(64), nullable=True, comment="Actor user id; NULL when not completed")
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    source = db.Column(
        db.String(20),
        nullable=False,
        default="manual",
        comment="manual | form | payment | signature | approval",
    )
    details = db.Column(db.JSON, nullable=True, comment="Trigger metadata, e.g. payment event id")
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("project_id", "requirement_id", name="uq_completion_project_requirement"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "requirement_id": self.requirement_id,
            "completed": self.completed,
            "completed_by": self.completed_by,
            "completed_at": _iso(self.completed_at),
            "source": self.source,
            "details": self.details or {},
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        flag = "x" if self.completed else " "
        return f"<RequirementCompletion [{flag}] project={self.project_id} {self.requirement_id}>"


class PhaseTransition(db.Model):
    """Append-only record of a project leaving one phase for the next."""

    __tablename__ = "phase_transitions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_phase = db.Column(db.String(10), nullable=False)
    to_phase = db.Column(db.String(10), nullable=False)
    trigger = db.Column(
        db.String(30),
        nullable=False,
        comment="form | manual | payment | signature | approval | check | create",
    )
    actor_id = db.Column(db.String(64), nullable=True)
    transitioned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "from_phase": self.from_phase,
            "to_phase": self.to_phase,
            "trigger": self.trigger,
            "actor_id": self.actor_id,
            "transitioned_at": _iso(self.transitioned_at),
        }

    def __repr__(self):
        return f"<PhaseTransition project={self.project_id} {self.from_phase}->{self.to_phase}>"


def seed_phase_requirements() -> int:
    """Mirror the static catalog into ``phase_requirements``.

    Idempotent: existing rows are brought in line with the catalog, missing
    rows are inserted. The caller commits.

    Returns:
        Number of rows inserted.
    """
    existing = {r.id: r for r in PhaseRequirement.query.all()}
    added = 0
    for definition in all_requirements():
        row = existing.get(definition.id)
        if row is None:
            row = PhaseRequirement(id=definition.id)
            db.session.add(row)
            added += 1
        row.phase_key = definition.phase_key.value
        row.requirement_text = definition.text
        row.is_mandatory = definition.is_mandatory
        row.requirement_type = definition.kind.value
        row.sort_order = definition.sort_order
    db.session.flush()
    return added
