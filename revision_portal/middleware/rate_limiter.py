"""
Per-blueprint rate limits (Flask-Limiter).

The shared ``limiter`` is created without default limits in
``revision_portal/__init__.py``; limits are attached here once the blueprints
are registered.  Storage comes from ``RATELIMIT_STORAGE_URI`` (Redis when
``REDIS_URL`` is set, in-memory otherwise).
"""

import logging

logger = logging.getLogger(__name__)

# State-changing workflow routes get the tighter budget.
BLUEPRINT_LIMITS = {
    "modification_bp": "60/minute",
    "work_progress_bp": "60/minute",
    "revision_bp": "60/minute",
    "project_bp": "200/minute",
    "notification_bp": "200/minute",
}
EXEMPT_BLUEPRINTS = ("health_bp",)


def init_rate_limits(app, limiter):
    """Attach limits per remote address; no-op under TESTING."""
    if app.config.get("TESTING"):
        return

    applied = {}
    for name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.limit(limit)(bp)
            applied[name] = limit
    for name in EXEMPT_BLUEPRINTS:
        if name in app.blueprints:
            limiter.exempt(app.blueprints[name])

    logger.info("Rate limits applied: %s", applied)
