"""
Phase Planning Platform
Blueprint registry.

    health_bp     /api/v1/health
    insights_bp   /api/v1/insights
    cron_bp       /api/cron
    scheduler_bp  /api/v1/scheduler
"""
