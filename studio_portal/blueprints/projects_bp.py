"""
Projects Blueprint.

Endpoints:
    POST /api/v1/projects                                  create (staff)
    GET  /api/v1/projects                                  list visible projects
    GET  /api/v1/projects/<pid>                            project + phase state
    GET  /api/v1/projects/<pid>/requirements               phase state + completion records
    GET  /api/v1/projects/<pid>/phases                     overview of all 8 phases
    GET  /api/v1/projects/<pid>/phases/history             phase transitions
    POST /api/v1/projects/<pid>/phases/check-advancement   { cascade? }
"""

from flask import Blueprint, jsonify

from studio_portal.blueprints import json_body, parse_bool
from studio_portal.core.context import current_actor
from studio_portal.services import project_service

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1/projects")


@projects_bp.route("", methods=["POST"])
def create_project():
    ctx = current_actor()
    data = json_body()
    result = project_service.create_project(
        ctx,
        name=data.get("name"),
        client_id=data.get("clientId", data.get("client_id")),
        service_type=data.get("serviceType", data.get("service_type")),
    )
    return jsonify({"success": True, **result}), 201


@projects_bp.route("", methods=["GET"])
def list_projects():
    ctx = current_actor()
    return jsonify({"success": True, "projects": project_service.list_projects(ctx)})


@projects_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id):
    ctx = current_actor()
    return jsonify({"success": True, "project": project_service.get_project(ctx, project_id)})


@projects_bp.route("/<int:project_id>/requirements", methods=["GET"])
def project_requirements(project_id):
    ctx = current_actor()
    return jsonify({"success": True, **project_service.get_requirement_status(ctx, project_id)})


@projects_bp.route("/<int:project_id>/phases", methods=["GET"])
def phase_overview(project_id):
    ctx = current_actor()
    return jsonify({"success": True, **project_service.get_phase_overview(ctx, project_id)})


@projects_bp.route("/<int:project_id>/phases/history", methods=["GET"])
def phase_history(project_id):
    ctx = current_actor()
    return jsonify({
        "success": True,
        "projectId": project_id,
        "transitions": project_service.get_phase_history(ctx, project_id),
    })


@projects_bp.route("/<int:project_id>/phases/check-advancement", methods=["POST"])
def check_advancement(project_id):
    ctx = current_actor()
    data = json_body()
    cascade = parse_bool(data["cascade"], "cascade") if "cascade" in data else None
    result = project_service.check_advancement(ctx, project_id, cascade=cascade)
    return jsonify({"success": True, **result})
