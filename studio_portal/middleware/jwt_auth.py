"""
JWT Auth Middleware: Parses JWT from Authorization header, sets g.jwt_*.

Sets for every API request:
    g.jwt_user_id: token ``sub`` or None
    g.jwt_roles: token ``roles`` or []

An absent, expired or invalid token leaves both unset; the route decides
whether it needs an actor (``core.context.current_actor`` raises 401).
The payment webhook authenticates by signature instead and is skipped.
"""

import logging

import jwt as pyjwt
from flask import g, request

from studio_portal.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/payments/webhook",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_roles = []

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired bearer token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Invalid bearer token on %s: %s", path, exc)
            return
        g.jwt_user_id = payload.get("sub")
        g.jwt_roles = payload.get("roles", [])
