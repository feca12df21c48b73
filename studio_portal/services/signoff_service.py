"""
Agreement-signature and approval trigger adapter.

Design decisions:
    - SignoffRecord is APPEND-ONLY; each signature or approval adds a row
      next to the completion it produces.
    - Only requirements of the project's current phase can be signed or
      approved. Signing the completion agreement while the project is still
      in DSGN raises PhaseMismatch and writes nothing.
    - Agreements: ``service`` → service_agreement (ONB),
      ``completion`` → completion_agreement (SIGN). Clients of the project
      and staff may sign.
    - Approvals: only ``approval``-kind requirements. ``production_complete``
      is the studio's own confirmation and requires a staff actor.
    - IP address capture uses X-Forwarded-For to handle load-balancer setups.
"""

from __future__ import annotations

import logging

from flask import has_request_context, request

from studio_portal.core.context import ActorContext
from studio_portal.core.exceptions import PhaseMismatch, ValidationError
from studio_portal.core.requirement_catalog import (
    AGREEMENT_REQUIREMENTS,
    RequirementKind,
    get_requirement,
)
from studio_portal.models import db
from studio_portal.models.signoff import SignoffRecord
from studio_portal.services import completion_store
from studio_portal.services.phase_engine import evaluate_after_trigger
from studio_portal.services.project_service import get_project_for
from studio_portal.services.transaction import run_in_project_transaction
from studio_portal.utils.helpers import clean_text

logger = logging.getLogger(__name__)

# Approvals only the studio may give.
STAFF_ONLY_APPROVALS = frozenset({"production_complete"})


def _get_client_ip() -> str | None:
    """Return real client IP, honouring X-Forwarded-For from load balancers."""
    if not has_request_context():
        return None
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.remote_addr


def _sign_off(ctx, project_id, definition, *, action, source, signer_name=None, comment=None):
    client_ip = _get_client_ip()

    def _work(state):
        if state.phase_key != definition.phase_key.value:
            raise PhaseMismatch(
                project_id=project_id,
                submitted=definition.phase_key.value,
                current=state.phase_key,
            )
        record = SignoffRecord(
            project_id=project_id,
            requirement_id=definition.id,
            action=action,
            signer_id=ctx.user_id,
            signer_name=signer_name,
            comment=comment,
            signer_ip=client_ip,
        )
        db.session.add(record)
        db.session.flush()
        completion_store.set_completion(
            project_id,
            definition.id,
            True,
            ctx.user_id,
            source=source,
            details={"signoff_id": record.id},
        )
        advancement = evaluate_after_trigger(project_id, trigger=source, actor_id=ctx.user_id)
        return {"signoff": record.to_dict(), "advancement": advancement.to_dict()}

    result = run_in_project_transaction(project_id, _work)
    logger.info(
        "Requirement %s %s for project %s", definition.id, action, project_id,
        extra={"project_id": project_id, "requirement_id": definition.id},
    )
    return result


def sign_agreement(ctx: ActorContext, project_id: int, agreement_type: str, signer_name: str) -> dict:
    """Sign a service or completion agreement.

    Raises:
        ValidationError: unknown agreement type or empty signer name.
        PhaseMismatch: the agreement belongs to another phase.
    """
    agreement_type = (agreement_type or "").strip().lower()
    requirement_id = AGREEMENT_REQUIREMENTS.get(agreement_type)
    if requirement_id is None:
        raise ValidationError(
            f"Unknown agreement type '{agreement_type}'",
            details={"valid_types": sorted(AGREEMENT_REQUIREMENTS)},
        )
    signer_name = clean_text(signer_name, "signerName")

    get_project_for(ctx, project_id)
    return _sign_off(
        ctx, project_id, get_requirement(requirement_id),
        action="signed", source="signature", signer_name=signer_name,
    )


def approve_requirement(ctx: ActorContext, project_id: int, requirement_id: str, comment: str | None = None) -> dict:
    """Approve an approval-kind requirement of the current phase.

    Raises:
        RequirementNotFound: unknown requirement.
        ValidationError: the requirement is not an approval.
        AccessDenied: a client approving a studio-only approval.
        PhaseMismatch: the requirement belongs to another phase.
    """
    definition = get_requirement(requirement_id)
    if definition.kind is not RequirementKind.APPROVAL:
        raise ValidationError(
            f"Requirement '{requirement_id}' is not an approval",
            details={"requirement_id": requirement_id, "kind": definition.kind.value},
        )
    get_project_for(ctx, project_id)
    if requirement_id in STAFF_ONLY_APPROVALS:
        ctx.require_staff()

    return _sign_off(
        ctx, project_id, definition,
        action="approved", source="approval",
        comment=clean_text(comment, "comment", required=False),
    )


def list_signoffs(ctx: ActorContext, project_id: int) -> list[dict]:
    get_project_for(ctx, project_id)
    rows = (
        SignoffRecord.query.filter_by(project_id=project_id)
        .order_by(SignoffRecord.created_at, SignoffRecord.id)
        .all()
    )
    return [r.to_dict() for r in rows]
