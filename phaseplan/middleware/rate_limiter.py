"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter in ``phaseplan/__init__.py`` has no default limit; the table
below is applied once all blueprints are registered. Health probes are
exempt so load balancers are never throttled.
"""

import logging

logger = logging.getLogger(__name__)

BLUEPRINT_LIMITS = {
    "insights_bp": "200/minute",    # dashboard reads + manual refresh
    "cron_bp": "30/minute",
    "scheduler_bp": "60/minute",
}
EXEMPT_BLUEPRINTS = ("health_bp",)


def init_rate_limits(app, limiter):
    """Attach ``BLUEPRINT_LIMITS`` to the registered blueprints (no-op when TESTING)."""
    if app.config.get("TESTING"):
        logger.debug("Rate limiting disabled for tests")
        return

    applied = {}
    for name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.limit(limit)(bp)
            applied[name] = limit

    for name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.exempt(bp)

    logger.info("Rate limits applied: %s", applied)
