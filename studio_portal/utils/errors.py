"""Standardised API error responses.

Usage
-----
    from studio_portal.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION_INVALID, "Too many requests", status=429)

Domain errors carry their own code and status (core/exceptions.py) and are
rendered through ``portal_error_response``.
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Codes for errors raised by Flask itself rather than a PortalError."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (current phase, requirement id, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "success": False,
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def portal_error_response(exc):
    """Render a ``PortalError`` with its own code and status."""
    return api_error(exc.code, str(exc), status=exc.status, details=exc.details)
