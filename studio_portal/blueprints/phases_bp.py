"""
Phase registry & manual-toggle Blueprint.

Endpoints:
    GET  /api/v1/phases
         The eight phases in pipeline order.

    GET  /api/v1/phases/requirements/<phase_key>
         Requirement definitions of one phase (400 ERR_INVALID_PHASE_KEY).

    POST /api/v1/phases/projects/<project_id>/requirements/<requirement_id>
         Body: { "completed": true|false }
         Returns: { success, allMandatoryComplete, autoAdvanced, nextPhaseName?, message, ... }

Layer contract:
    - Blueprint: parse input, build the actor, call service, return JSON.
    - Errors raised by services are rendered by the app-level PortalError handler.
"""

from flask import Blueprint, jsonify

from studio_portal.blueprints import json_body, parse_bool
from studio_portal.core.context import current_actor
from studio_portal.core.exceptions import ValidationError
from studio_portal.core.phase_registry import coerce_phase_key, list_phases
from studio_portal.core.requirement_catalog import get_requirements
from studio_portal.services import requirement_toggle_service

phases_bp = Blueprint("phases", __name__, url_prefix="/api/v1/phases")


@phases_bp.route("", methods=["GET"])
def list_all_phases():
    return jsonify({"success": True, "phases": [p.to_dict() for p in list_phases()]})


@phases_bp.route("/requirements/<phase_key>", methods=["GET"])
def phase_requirements(phase_key):
    key = coerce_phase_key(phase_key)
    return jsonify({
        "success": True,
        "phaseKey": key.value,
        "requirements": [d.to_dict() for d in get_requirements(key)],
    })


@phases_bp.route("/projects/<int:project_id>/requirements/<requirement_id>", methods=["POST"])
def toggle_requirement(project_id, requirement_id):
    ctx = current_actor()
    data = json_body()
    if "completed" not in data:
        raise ValidationError("Field 'completed' is required")
    completed = parse_bool(data["completed"], "completed")
    body = requirement_toggle_service.toggle_requirement(ctx, project_id, requirement_id, completed)
    return jsonify(body), 200
