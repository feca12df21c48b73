"""
Notification Blueprint.

Endpoints:
    GET  /api/v1/notifications?projectId=&unreadOnly=true&limit=&offset=
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
"""

from flask import Blueprint, jsonify, request

from studio_portal.blueprints import parse_pagination
from studio_portal.core.context import current_actor
from studio_portal.services.notification import NotificationService

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")


@notification_bp.route("", methods=["GET"])
def list_notifications():
    ctx = current_actor()
    limit, offset = parse_pagination()
    result = NotificationService.list_for_actor(
        ctx,
        project_id=request.args.get("projectId", type=int),
        unread_only=request.args.get("unreadOnly", "false").lower() == "true",
        limit=limit,
        offset=offset,
    )
    return jsonify({"success": True, "notifications": result["items"], "total": result["total"]})


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    ctx = current_actor()
    return jsonify({"success": True, "unread_count": NotificationService.unread_count(ctx)})


@notification_bp.route("/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    ctx = current_actor()
    notif = NotificationService.mark_read(ctx, notification_id)
    return jsonify({"success": True, "notification": notif.to_dict()})
