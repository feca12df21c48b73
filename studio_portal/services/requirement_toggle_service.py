"""
Manual-toggle trigger adapter.

An authenticated actor flips one requirement's completion flag. Clients may
only toggle the lightweight kinds (monitor, review, confirm, feedback,
launch, download); form, document, payment and approval requirements are
completed by their own adapters. Staff and admins may toggle any kind.

Un-checking a requirement is allowed and never moves the project backwards.

The response keeps the portal's checklist contract:
    {success, allMandatoryComplete, autoAdvanced, nextPhaseName?, message}
"""

from __future__ import annotations

import logging

from studio_portal.core.context import ActorContext
from studio_portal.core.exceptions import UnauthorizedToggle
from studio_portal.core.requirement_catalog import get_requirement, is_client_toggleable
from studio_portal.services import completion_store
from studio_portal.services.phase_engine import evaluate_after_trigger
from studio_portal.services.project_service import get_project_for
from studio_portal.services.transaction import run_in_project_transaction

logger = logging.getLogger(__name__)


def check_toggle_permission(ctx: ActorContext, requirement_id: str) -> None:
    """Raise UnauthorizedToggle unless ``ctx`` may toggle this requirement by hand."""
    definition = get_requirement(requirement_id)
    if ctx.is_staff or is_client_toggleable(definition.kind):
        return
    logger.warning(
        "Toggle of %s refused for %s (kind=%s)",
        requirement_id, ctx.role.value, definition.kind.value,
        extra={"requirement_id": requirement_id},
    )
    raise UnauthorizedToggle(requirement_id, definition.kind.value, ctx.role.value)


def toggle_requirement(ctx: ActorContext, project_id: int, requirement_id: str, completed: bool) -> dict:
    """Set one requirement complete or incomplete, then evaluate advancement.

    Raises:
        NotFoundError / AccessDenied: project lookup.
        RequirementNotFound: unknown requirement id.
        UnauthorizedToggle: client role on a non-toggleable kind.
    """
    get_project_for(ctx, project_id)
    check_toggle_permission(ctx, requirement_id)

    def _work(state):
        record = completion_store.set_completion(
            project_id, requirement_id, bool(completed), ctx.user_id, source="manual",
        )
        advancement = evaluate_after_trigger(project_id, trigger="manual", actor_id=ctx.user_id)
        return record.to_dict(), advancement, state.to_dict()

    record, advancement, phase = run_in_project_transaction(project_id, _work)

    body = {
        "success": True,
        "allMandatoryComplete": advancement.all_mandatory_complete,
        "autoAdvanced": advancement.advanced,
        "completion": record,
        "phase": phase,
        "advancement": advancement.to_dict(),
    }
    if advancement.advanced:
        next_name = advancement.to_dict()["new_phase_name"]
        body["nextPhaseName"] = next_name
        body["message"] = f"All requirements complete. Project advanced to {next_name}."
    else:
        body["message"] = "Requirement updated successfully"
    return body
