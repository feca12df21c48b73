"""
Studio Portal: Project domain model.

Models:
    - Project: a client engagement delivered through the 8-phase pipeline
    - ProjectPhaseState: the single current-phase row owned by each project

Ownership:
    ProjectPhaseState.phase_key / progress_percent / entered_at / status are
    written only by the phase advancement engine. ``version`` is bumped on
    every completion write and transition so clients can detect stale copies.
    The phase row is also the project's lock row: every workflow transaction
    selects it FOR UPDATE before writing anything.
"""

from datetime import datetime, timezone

from studio_portal.core.phase_registry import INITIAL_PHASE, INITIAL_PROGRESS, get_phase
from studio_portal.models import db

PHASE_STATUS_IN_PROGRESS = "in_progress"
PHASE_STATUS_LAUNCHED = "launched"
VALID_PHASE_STATUSES = frozenset({PHASE_STATUS_IN_PROGRESS, PHASE_STATUS_LAUNCHED})


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Project(db.Model):
    """Client project."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    client_id = db.Column(
        db.String(64),
        nullable=False,
        index=True,
        comment="Owning client's user id (JWT sub)",
    )
    service_type = db.Column(db.String(50), nullable=True, comment="branding | print | web | ...")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    phase_state = db.relationship(
        "ProjectPhaseState",
        back_populates="project",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_phase=True):
        result = {
            "id": self.id,
            "name": self.name,
            "client_id": self.client_id,
            "service_type": self.service_type,
            "created_at": _iso(self.created_at),
        }
        if include_phase and self.phase_state is not None:
            result["phase"] = self.phase_state.to_dict()
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class ProjectPhaseState(db.Model):
    """Exactly one row per project: the phase it currently occupies."""

    __tablename__ = "project_phases"

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        primary_key=True,
    )
    phase_key = db.Column(
        db.String(10),
        nullable=False,
        default=INITIAL_PHASE.value,
        index=True,
        comment="ONB | IDEA | DSGN | REV | PROD | PAY | SIGN | LAUNCH",
    )
    status = db.Column(
        db.String(20),
        nullable=False,
        default=PHASE_STATUS_IN_PROGRESS,
        comment="in_progress | launched",
    )
    entered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = db.Column(
        db.DateTime(timezone=True),
        nullable=True,
        comment="Set when the project enters LAUNCH",
    )
    progress_percent = db.Column(db.Integer, nullable=False, default=INITIAL_PROGRESS)
    version = db.Column(
        db.Integer,
        nullable=False,
        default=1,
        comment="Incremented on every completion write or phase transition",
    )
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", back_populates="phase_state")

    __table_args__ = (
        db.CheckConstraint(
            "phase_key IN ('ONB','IDEA','DSGN','REV','PROD','PAY','SIGN','LAUNCH')",
            name="ck_project_phases_phase_key",
        ),
        db.CheckConstraint(
            "progress_percent >= 0 AND progress_percent <= 100",
            name="ck_project_phases_progress",
        ),
    )

    def bump_version(self):
        self.version = (self.version or 0) + 1

    def to_dict(self):
        phase = get_phase(self.phase_key)
        return {
            "project_id": self.project_id,
            "phase_key": phase.key.value,
            "phase_name": phase.display_name,
            "ordinal": phase.ordinal,
            "status": self.status,
            "entered_at": _iso(self.entered_at),
            "completed_at": _iso(self.completed_at),
            "progress_percent": self.progress_percent,
            "version": self.version,
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ProjectPhaseState project={self.project_id} {self.phase_key} v{self.version}>"
