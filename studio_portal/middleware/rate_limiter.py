"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in studio_portal/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from studio_portal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WEBHOOK_LIMIT = "120/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Payment webhook:  120/minute (processor retries arrive in bursts)
        - Workflow writes:  60/minute  (forms, toggles, sign-offs)
        - Reads:            200/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode or with RATELIMIT_ENABLED=False.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("payments")
    if bp:
        limiter.limit(WEBHOOK_LIMIT)(bp)

    for bp_name in ("forms", "phases", "signoff"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("projects", "notifications"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: webhook: %s, write: %s, read: %s",
        WEBHOOK_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
