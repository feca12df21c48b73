"""
Requirement Completion Store.

Upserts per-(project, requirement) completion rows. All writes happen
inside ``run_in_project_transaction`` after the project's phase row has been
locked, so two writers on the same project serialize on that lock and the
unique constraint on (project_id, requirement_id) backs the insert path.

The store flushes, it never commits: the surrounding transaction owns the
unit of work.

Usage:
    from studio_portal.services import completion_store

    rec = completion_store.set_completion(
        project_id, "review_brief", True, actor.user_id, source="manual",
    )
    done = completion_store.satisfied_requirement_ids(project_id)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from studio_portal.core.exceptions import ValidationError
from studio_portal.core.requirement_catalog import get_requirement
from studio_portal.models import db
from studio_portal.models.project import ProjectPhaseState
from studio_portal.models.workflow import COMPLETION_SOURCES, RequirementCompletion

logger = logging.getLogger(__name__)


def _get_row(project_id: int, requirement_id: str) -> RequirementCompletion | None:
    return db.session.execute(
        select(RequirementCompletion).where(
            RequirementCompletion.project_id == project_id,
            RequirementCompletion.requirement_id == requirement_id,
        )
    ).scalar_one_or_none()


def set_completion(
    project_id: int,
    requirement_id: str,
    completed: bool,
    actor_id: str | None,
    *,
    source: str,
    details: dict | None = None,
) -> RequirementCompletion:
    """Upsert the completion state of one requirement.

    Writing the state a requirement already has is a no-op and returns the
    existing row unchanged. Un-completing clears ``completed_by`` and
    ``completed_at``.

    Raises:
        RequirementNotFound: unknown requirement id.
        ValidationError: unknown source.
    """
    get_requirement(requirement_id)
    if source not in COMPLETION_SOURCES:
        raise ValidationError(f"Unknown completion source '{source}'")

    row = _get_row(project_id, requirement_id)
    if row is not None and row.completed == bool(completed):
        return row

    if row is None:
        row = RequirementCompletion(project_id=project_id, requirement_id=requirement_id)
        db.session.add(row)

    row.completed = bool(completed)
    row.source = source
    if completed:
        row.completed_by = actor_id
        row.completed_at = datetime.now(timezone.utc)
    else:
        row.completed_by = None
        row.completed_at = None
    if details:
        row.details = details

    state = db.session.get(ProjectPhaseState, project_id)
    if state is not None:
        state.bump_version()

    db.session.flush()
    logger.info(
        "Requirement %s for project %s marked %s",
        requirement_id, project_id, "complete" if completed else "incomplete",
        extra={
            "project_id": project_id,
            "requirement_id": requirement_id,
            "source": source,
            "actor_id": actor_id,
        },
    )
    return row


def list_completions(project_id: int) -> list[RequirementCompletion]:
    return list(
        db.session.execute(
            select(RequirementCompletion)
            .where(RequirementCompletion.project_id == project_id)
            .order_by(RequirementCompletion.id)
        ).scalars()
    )


def is_satisfied(project_id: int, requirement_id: str) -> bool:
    row = _get_row(project_id, requirement_id)
    return bool(row and row.completed)


def satisfied_requirement_ids(project_id: int) -> set[str]:
    rows = db.session.execute(
        select(RequirementCompletion.requirement_id).where(
            RequirementCompletion.project_id == project_id,
            RequirementCompletion.completed.is_(True),
        )
    ).scalars()
    return set(rows)
