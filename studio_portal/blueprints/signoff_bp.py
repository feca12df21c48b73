"""
Sign-off Blueprint: agreement signatures and requirement approvals.

Endpoints:
    POST /api/v1/projects/<pid>/agreements/<agreement_type>/sign
         agreement_type: service | completion
         Body: { "signerName": "Jane Client" }
         Returns: 201 with the SignoffRecord and the advancement result.

    POST /api/v1/projects/<pid>/requirements/<requirement_id>/approve
         Body: { "comment": "..." }   (optional)
         Returns: 201 with the SignoffRecord and the advancement result.

    GET  /api/v1/projects/<pid>/signoffs
         Returns: 200 with the project's ordered audit log.

Layer contract:
    - Blueprint: parse input, call signoff_service, return JSON.
    - NO db.session calls here: all writes owned by signoff_service.
"""

from flask import Blueprint, jsonify

from studio_portal.blueprints import json_body
from studio_portal.core.context import current_actor
from studio_portal.services import signoff_service

signoff_bp = Blueprint("signoff", __name__, url_prefix="/api/v1")


@signoff_bp.route("/projects/<int:project_id>/agreements/<agreement_type>/sign", methods=["POST"])
def sign_agreement(project_id, agreement_type):
    ctx = current_actor()
    data = json_body()
    result = signoff_service.sign_agreement(
        ctx, project_id, agreement_type, data.get("signerName", data.get("signer_name")),
    )
    return jsonify({"success": True, **result}), 201


@signoff_bp.route("/projects/<int:project_id>/requirements/<requirement_id>/approve", methods=["POST"])
def approve_requirement(project_id, requirement_id):
    ctx = current_actor()
    data = json_body()
    result = signoff_service.approve_requirement(ctx, project_id, requirement_id, data.get("comment"))
    return jsonify({"success": True, **result}), 201


@signoff_bp.route("/projects/<int:project_id>/signoffs", methods=["GET"])
def signoff_history(project_id):
    ctx = current_actor()
    return jsonify({"success": True, "signoffs": signoff_service.list_signoffs(ctx, project_id)})
