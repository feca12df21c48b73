"""
Studio Portal
Blueprint helpers shared by the API modules.
"""

from flask import request

from studio_portal.core.exceptions import ValidationError


def json_body() -> dict:
    """Return the JSON object body, or {} when empty.

    Raises:
        ValidationError: the body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"Field '{field}' must be a boolean")


def parse_pagination(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Query params:
        limit: max items (default 50, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        limit, offset = default_limit, 0
    if limit < 1:
        limit = default_limit
    return limit, offset
