"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready: simple 200 for load balancers
    GET /api/v1/health/live: database connectivity and catalog seed status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from studio_portal.core.requirement_catalog import all_requirements
from studio_portal.models import db
from studio_portal.models.workflow import PhaseRequirement

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe: always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Requirement catalog seed ─────────────────────────────────────
    if overall:
        expected = len(all_requirements())
        seeded = PhaseRequirement.query.count()
        checks["requirement_catalog"] = {
            "status": "ok" if seeded == expected else "incomplete",
            "seeded": seeded,
            "expected": expected,
        }
        if seeded != expected:
            overall = False

    checks["payment_webhook"] = {
        "status": "ok" if current_app.config.get("PAYMENT_WEBHOOK_SECRET") else "not_configured",
    }

    checks["app"] = {
        "name": "Studio Portal",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
