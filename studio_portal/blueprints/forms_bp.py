"""
Forms Blueprint.

Endpoints:
    POST /api/v1/forms/submit
         Body: { "projectId": <int>, "phaseKey": "ONB", "moduleId": "intake_base", "data": {...} }
         Returns: 200 { success, submission, completedRequirement, advancement }
         409 ERR_PHASE_MISMATCH when the project has left (or not reached) phaseKey.

    GET  /api/v1/forms/history/<project_id>?phaseKey=DSGN
         Submissions of a project, newest first.
"""

from flask import Blueprint, jsonify, request

from studio_portal.blueprints import json_body
from studio_portal.core.context import current_actor
from studio_portal.core.exceptions import ValidationError
from studio_portal.services import form_submission_service

forms_bp = Blueprint("forms", __name__, url_prefix="/api/v1/forms")


@forms_bp.route("/submit", methods=["POST"])
def submit():
    ctx = current_actor()
    data = json_body()

    missing = [f for f in ("projectId", "phaseKey", "moduleId") if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )
    try:
        project_id = int(data["projectId"])
    except (TypeError, ValueError):
        raise ValidationError("Field 'projectId' must be an integer") from None

    result = form_submission_service.submit_form(
        ctx, project_id, data["phaseKey"], data["moduleId"], data.get("data"),
    )
    return jsonify({
        "success": True,
        "submission": result["submission"],
        "completedRequirement": result["completed_requirement"],
        "advancement": result["advancement"],
    })


@forms_bp.route("/history/<int:project_id>", methods=["GET"])
def history(project_id):
    ctx = current_actor()
    submissions = form_submission_service.list_submissions(
        ctx, project_id, phase_key=request.args.get("phaseKey"),
    )
    return jsonify({"success": True, "submissions": submissions})
