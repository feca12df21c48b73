"""
Project lifecycle and read models.

Creation, access-checked lookups, the phase overview, transition history and
forced re-evaluation. Phase state is never written here directly; creation
evaluates the engine once so a phase with nothing to gate cannot stall.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from studio_portal.core.context import ActorContext
from studio_portal.core.exceptions import NotFoundError
from studio_portal.core.phase_registry import INITIAL_PHASE, INITIAL_PROGRESS, get_phase, list_phases
from studio_portal.core.requirement_catalog import get_requirements
from studio_portal.models import db
from studio_portal.models.project import Project, ProjectPhaseState
from studio_portal.models.workflow import PhaseTransition
from studio_portal.services import completion_store
from studio_portal.services.phase_engine import evaluate_after_trigger, outstanding_requirements
from studio_portal.services.transaction import run_in_project_transaction
from studio_portal.utils.helpers import clean_text

logger = logging.getLogger(__name__)


def get_project_for(ctx: ActorContext, project_id: int) -> Project:
    """Load a project the actor may see.

    Raises:
        NotFoundError: unknown project.
        AccessDenied: a client asking for someone else's project.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    ctx.require_access(project)
    return project


def create_project(ctx: ActorContext, name: str, client_id: str, service_type: str | None = None) -> dict:
    """Create a project at ONB with progress 0, then evaluate it once. Staff only."""
    ctx.require_staff()
    name = clean_text(name, "name")
    client_id = clean_text(client_id, "client_id")
    service_type = clean_text(service_type, "service_type", required=False)

    project = Project(name=name, client_id=client_id, service_type=service_type)
    project.phase_state = ProjectPhaseState(
        phase_key=INITIAL_PHASE.value,
        progress_percent=INITIAL_PROGRESS,
    )
    db.session.add(project)
    db.session.commit()
    logger.info(
        "Project %s created for client %s", project.id, project.client_id,
        extra={"project_id": project.id, "phase_key": INITIAL_PHASE.value},
    )

    advancement = run_in_project_transaction(
        project.id,
        lambda state: evaluate_after_trigger(state.project_id, trigger="create", actor_id=ctx.user_id),
    )
    return {"project": project.to_dict(), "advancement": advancement.to_dict()}


def list_projects(ctx: ActorContext) -> list[dict]:
    stmt = select(Project).order_by(Project.id)
    if not ctx.is_staff:
        stmt = stmt.where(Project.client_id == ctx.user_id)
    return [p.to_dict() for p in db.session.execute(stmt).scalars()]


def get_project(ctx: ActorContext, project_id: int) -> dict:
    project = get_project_for(ctx, project_id)
    data = project.to_dict()
    data["outstanding"] = outstanding_requirements(project_id, project.phase_state.phase_key)
    return data


def get_requirement_status(ctx: ActorContext, project_id: int) -> dict:
    """Phase state plus every completion record, read in one go.

    The client mirror builds its snapshot from this single response so the
    phase and the completions it sees always belong to the same version.
    """
    project = get_project_for(ctx, project_id)
    state = project.phase_state
    completions = completion_store.list_completions(project_id)
    return {
        "project_id": project_id,
        "phase": state.to_dict(),
        "completions": [c.to_dict() for c in completions],
        "outstanding": outstanding_requirements(project_id, state.phase_key),
    }


def get_phase_overview(ctx: ActorContext, project_id: int) -> dict:
    """All eight phases with completed / in_progress / not_started and their requirements."""
    project = get_project_for(ctx, project_id)
    state = project.phase_state
    current = get_phase(state.phase_key)
    done = completion_store.satisfied_requirement_ids(project_id)

    entered = {}
    for tr in _transitions(project_id):
        entered[tr.to_phase] = tr.transitioned_at

    phases = []
    for phase in list_phases():
        if phase.ordinal < current.ordinal:
            status = "completed"
        elif phase.ordinal == current.ordinal:
            status = "in_progress"
        else:
            status = "not_started"
        entered_at = state.entered_at if phase.key is current.key else entered.get(phase.key.value)
        phases.append({
            **phase.to_dict(),
            "status": status,
            "entered_at": entered_at.isoformat() if entered_at else None,
            "requirements": [
                {**d.to_dict(), "completed": d.id in done}
                for d in get_requirements(phase.key)
            ],
        })

    return {
        "project_id": project_id,
        "current_phase": current.key.value,
        "current_phase_name": current.display_name,
        "status": state.status,
        "progress_percent": state.progress_percent,
        "version": state.version,
        "phases": phases,
    }


def _transitions(project_id: int) -> list[PhaseTransition]:
    return list(
        db.session.execute(
            select(PhaseTransition)
            .where(PhaseTransition.project_id == project_id)
            .order_by(PhaseTransition.transitioned_at, PhaseTransition.id)
        ).scalars()
    )


def get_phase_history(ctx: ActorContext, project_id: int) -> list[dict]:
    get_project_for(ctx, project_id)
    return [t.to_dict() for t in _transitions(project_id)]


def check_advancement(ctx: ActorContext, project_id: int, cascade: bool | None = None) -> dict:
    """Force a re-evaluation without writing any completion."""
    get_project_for(ctx, project_id)
    result = run_in_project_transaction(
        project_id,
        lambda state: evaluate_after_trigger(
            state.project_id, trigger="check", actor_id=ctx.user_id, cascade=cascade,
        ),
    )
    state = db.session.get(ProjectPhaseState, project_id)
    return {"advancement": result.to_dict(), "phase": state.to_dict()}
