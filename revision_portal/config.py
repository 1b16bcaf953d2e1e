"""
Revision Portal
Configuration classes for the app factory.

``create_app(config_name)`` picks one of the classes below; when no name is
given ``APP_ENV`` decides (default: development).

Engine settings:
    DEFAULT_TOTAL_MODIFICATION_COUNT     free revisions for a new project
    DEFAULT_ADDITIONAL_MODIFICATION_FEE  billed amount once the budget is spent
    URGENT_FEE_MULTIPLIER                applied to the fee for urgent requests
    PROGRESS_NOTIFICATION_MILESTONES     overall_progress values that notify
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _database_url(env_var, fallback=None):
    """Read a DB URL, normalising the legacy ``postgres://`` scheme."""
    url = os.getenv(env_var, "")
    if not url:
        return fallback
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


_POOLED_ENGINE = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOLED_ENGINE)

    REDIS_URL = os.getenv("REDIS_URL", "")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1000"))
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    DEFAULT_TOTAL_MODIFICATION_COUNT = int(os.getenv("DEFAULT_TOTAL_MODIFICATION_COUNT", "3"))
    DEFAULT_ADDITIONAL_MODIFICATION_FEE = float(os.getenv("DEFAULT_ADDITIONAL_MODIFICATION_FEE", "100000"))
    URGENT_FEE_MULTIPLIER = 1.5
    PROGRESS_NOTIFICATION_MILESTONES = (25, 50, 75, 90, 100)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        "DATABASE_URL",
        f"sqlite:///{os.path.join(basedir, 'instance', 'revision_portal_dev.db')}",
    )
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", "sqlite:///:memory:")
    # in-memory SQLite rejects pool sizing
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    RATELIMIT_ENABLED = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOLED_ENGINE,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        missing = [
            name for name, value in (
                ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
                ("SECRET_KEY", os.getenv("SECRET_KEY")),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"Production requires {', '.join(missing)} to be set")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
