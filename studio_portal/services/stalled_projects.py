"""
Stalled-project sweep.

Finds projects sitting in a non-terminal phase for longer than
``STALLED_PHASE_DAYS`` (default 7) and sends their client and the studio a
reminder. A project is reminded at most once per phase every
``REMINDER_INTERVAL_DAYS``.

Run from the CLI:
    flask remind-stalled --days 7
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import select

from studio_portal.core.phase_registry import TERMINAL_PHASE, get_phase
from studio_portal.models import db
from studio_portal.models.notification import STAFF_RECIPIENT, Notification
from studio_portal.models.project import PHASE_STATUS_IN_PROGRESS, Project, ProjectPhaseState
from studio_portal.services.notification import NotificationService
from studio_portal.services.phase_engine import outstanding_requirements

logger = logging.getLogger(__name__)

DEFAULT_STALLED_DAYS = 7
REMINDER_INTERVAL_DAYS = 3


def find_stalled_projects(days: int, now: datetime | None = None) -> list[ProjectPhaseState]:
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days)
    return list(
        db.session.execute(
            select(ProjectPhaseState)
            .where(
                ProjectPhaseState.status == PHASE_STATUS_IN_PROGRESS,
                ProjectPhaseState.phase_key != TERMINAL_PHASE.value,
                ProjectPhaseState.entered_at < cutoff,
            )
            .order_by(ProjectPhaseState.entered_at)
        ).scalars()
    )


def _recently_reminded(project_id: int, phase_key: str, now: datetime) -> bool:
    since = now - timedelta(days=REMINDER_INTERVAL_DAYS)
    return db.session.execute(
        select(Notification.id).where(
            Notification.project_id == project_id,
            Notification.category == "reminder",
            Notification.entity_type == "phase",
            Notification.entity_id == phase_key,
            Notification.created_at >= since,
        ).limit(1)
    ).first() is not None


def remind_stalled_projects(days: int | None = None, now: datetime | None = None) -> list[dict]:
    """Notify every stalled project not reminded recently.

    Returns:
        One summary dict per project reminded.
    """
    if days is None:
        days = int(current_app.config.get("STALLED_PHASE_DAYS", DEFAULT_STALLED_DAYS))
    now = now or datetime.now(timezone.utc)

    reminded = []
    for state in find_stalled_projects(days, now):
        if _recently_reminded(state.project_id, state.phase_key, now):
            continue
        project = db.session.get(Project, state.project_id)
        phase = get_phase(state.phase_key)
        outstanding = outstanding_requirements(state.project_id, phase.key)
        NotificationService.broadcast(
            title=f"{project.name} is waiting in {phase.display_name}",
            message=(
                f"No progress for more than {days} days. "
                f"Outstanding: {', '.join(outstanding) or 'none'}."
            ),
            category="reminder",
            severity="warning",
            project_id=project.id,
            entity_type="phase",
            entity_id=phase.key.value,
            recipients=[project.client_id, STAFF_RECIPIENT],
        )
        reminded.append({
            "project_id": project.id,
            "phase_key": phase.key.value,
            "outstanding": outstanding,
        })
        logger.info(
            "Stalled project %s reminded in %s", project.id, phase.key.value,
            extra={"project_id": project.id, "phase_key": phase.key.value},
        )
    return reminded
