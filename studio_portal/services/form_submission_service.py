"""
Form-submission trigger adapter.

A client submits a form module for a phase. The submission is only accepted
while the project is actually in that phase, which stops a stale browser tab
from writing into a phase the project already left. Within one project
transaction the adapter:

    1. checks the submitted phase against the locked current phase
       (PhaseMismatch, nothing written, on a difference)
    2. upserts the submission for (project, phase, module)
    3. completes the requirement the module maps to, when that requirement
       belongs to the submitted phase and is form-completable
    4. evaluates advancement

Payment and document requirements are never completed by a form.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from studio_portal.core.context import ActorContext
from studio_portal.core.exceptions import PhaseMismatch, ValidationError
from studio_portal.core.phase_registry import coerce_phase_key
from studio_portal.core.requirement_catalog import FORM_EXCLUDED_KINDS, requirement_for_form_module
from studio_portal.models import db
from studio_portal.models.form_submission import FormSubmission
from studio_portal.services import completion_store
from studio_portal.services.phase_engine import evaluate_after_trigger
from studio_portal.services.project_service import get_project_for
from studio_portal.services.transaction import run_in_project_transaction
from studio_portal.utils.helpers import clean_text

logger = logging.getLogger(__name__)


def _upsert_submission(project_id, phase_key, module_id, data, actor_id) -> FormSubmission:
    sub = db.session.execute(
        select(FormSubmission).where(
            FormSubmission.project_id == project_id,
            FormSubmission.phase_key == phase_key,
            FormSubmission.module_id == module_id,
        )
    ).scalar_one_or_none()
    if sub is None:
        sub = FormSubmission(project_id=project_id, phase_key=phase_key, module_id=module_id)
        db.session.add(sub)
    sub.payload = data
    sub.submitted_by = actor_id
    db.session.flush()
    return sub


def submit_form(ctx: ActorContext, project_id: int, phase_key, module_id: str, data: dict | None) -> dict:
    """Record a form submission and let it drive the workflow.

    Returns:
        ``{"submission", "completed_requirement", "advancement"}``.

    Raises:
        InvalidPhaseKey: ``phase_key`` is not a phase.
        PhaseMismatch: the project is no longer (or not yet) in ``phase_key``.
        ValidationError: missing module id or non-object data.
    """
    key = coerce_phase_key(phase_key)
    module_id = clean_text(module_id, "moduleId")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Field 'data' must be an object")

    get_project_for(ctx, project_id)

    def _work(state):
        if state.phase_key != key.value:
            logger.warning(
                "Rejected %s submission for project %s: project is in %s",
                module_id, project_id, state.phase_key,
                extra={"project_id": project_id, "phase_key": key.value},
            )
            raise PhaseMismatch(project_id=project_id, submitted=key.value, current=state.phase_key)

        submission = _upsert_submission(project_id, key.value, module_id, data, ctx.user_id)

        completed_requirement = None
        definition = requirement_for_form_module(module_id)
        if (
            definition is not None
            and definition.phase_key is key
            and definition.kind not in FORM_EXCLUDED_KINDS
        ):
            completion_store.set_completion(
                project_id,
                definition.id,
                True,
                ctx.user_id,
                source="form",
                details={"module_id": module_id, "submission_id": submission.id},
            )
            completed_requirement = definition.id

        advancement = evaluate_after_trigger(project_id, trigger="form", actor_id=ctx.user_id)
        return {
            "submission": submission.to_dict(),
            "completed_requirement": completed_requirement,
            "advancement": advancement.to_dict(),
        }

    result = run_in_project_transaction(project_id, _work)
    logger.info(
        "Form %s submitted for project %s", module_id, project_id,
        extra={"project_id": project_id, "phase_key": key.value},
    )
    return result


def list_submissions(ctx: ActorContext, project_id: int, phase_key=None) -> list[dict]:
    get_project_for(ctx, project_id)
    stmt = select(FormSubmission).where(FormSubmission.project_id == project_id)
    if phase_key:
        stmt = stmt.where(FormSubmission.phase_key == coerce_phase_key(phase_key).value)
    stmt = stmt.order_by(FormSubmission.updated_at.desc(), FormSubmission.id.desc())
    return [s.to_dict() for s in db.session.execute(stmt).scalars()]
