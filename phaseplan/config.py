"""
Phase Planning Platform
Flask configuration, one class per environment.

    app.config.from_object(config[os.getenv("APP_ENV", "development")])

Every value can be overridden through an environment variable of the same
name.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_bool(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _database_url(fallback=None):
    """DATABASE_URL with the legacy ``postgres://`` scheme fixed for SQLAlchemy 2."""
    url = os.getenv("DATABASE_URL", "")
    if not url:
        return fallback
    return url.replace("postgres://", "postgresql://", 1)


class Config:
    # Random per process unless set; ProductionConfig insists on a real one
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Cron endpoints expect "Authorization: Bearer <CRON_SECRET>"
    CRON_SECRET = os.getenv("CRON_SECRET")

    # ── Insight batch ──
    INSIGHT_ENHANCED_ENABLED = _env_bool("INSIGHT_ENHANCED_ENABLED")
    INSIGHT_SNAPSHOT_WINDOW_DAYS = int(os.getenv("INSIGHT_SNAPSHOT_WINDOW_DAYS", "14"))
    INSIGHT_HOURS_PER_DAY = float(os.getenv("INSIGHT_HOURS_PER_DAY", "8"))
    INSIGHT_MIN_DATA_POINTS = int(os.getenv("INSIGHT_MIN_DATA_POINTS", "3"))
    INSIGHT_REFRESH_COOLDOWN_MINUTES = int(os.getenv("INSIGHT_REFRESH_COOLDOWN_MINUTES", "60"))

    # ── Narrative texts (rule-based fallback when no key is set) ──
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
    INSIGHT_LLM_MODEL = os.getenv("INSIGHT_LLM_MODEL", "claude-3-haiku-20240307")

    # ── Open-Meteo ──
    WEATHER_API_URL = os.getenv("WEATHER_API_URL", "https://api.open-meteo.com/v1/forecast")
    WEATHER_TIMEZONE = os.getenv("WEATHER_TIMEZONE", "Europe/Berlin")
    WEATHER_TIMEOUT = float(os.getenv("WEATHER_TIMEOUT", "10"))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'phaseplan_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    CRON_SECRET = "test-cron-secret"
    ANTHROPIC_API_KEY = ""
    INSIGHT_ENHANCED_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        # the insight batch reads whole tenants; cap any single statement at 30s
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        missing = [name for name, value in (
            ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
