import os
from datetime import timedelta


class ConfigurationError(Exception):
    """
    Raised when an invalid or unsupported configuration is requested.
    """
    pass


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


class BaseConfig:
    """
    Base configuration shared by all environments.
    """

    ENV = "base"

    # Flask
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY")
    JSON_SORT_KEYS = False

    # Application
    APP_NAME = os.getenv("APP_NAME", "Member Portal")
    APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///portal.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # Session auth (JWT)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=_env_int("JWT_ACCESS_TOKEN_MINUTES", 60))
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_HEADER_NAME = "Authorization"
    JWT_HEADER_TYPE = "Bearer"
    JWT_ERROR_MESSAGE_KEY = "error"

    # API tokens
    API_TOKEN_PREFIX = "mre_"
    API_TOKEN_HASH_METHOD = os.getenv("API_TOKEN_HASH_METHOD", "pbkdf2:sha256:600000")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE = _env_int("STRIPE_WEBHOOK_TOLERANCE", 300)
    STRIPE_PRICE_IDS = {
        "tier1": os.getenv("STRIPE_PRICE_TIER1", ""),
        "tier2": os.getenv("STRIPE_PRICE_TIER2", ""),
        "tier3": os.getenv("STRIPE_PRICE_TIER3", ""),
        "tier4": os.getenv("STRIPE_PRICE_TIER4", ""),
    }

    # Rate limiting
    RATE_LIMIT_STORAGE = os.getenv("RATE_LIMIT_STORAGE", "memory").lower()
    RATE_LIMIT_DEFAULT = {
        "max_requests": _env_int("RATE_LIMIT_DEFAULT_MAX", 100),
        "window_ms": _env_int("RATE_LIMIT_DEFAULT_WINDOW_MS", 60_000),
    }
    RATE_LIMIT_STRICT = {
        "max_requests": _env_int("RATE_LIMIT_STRICT_MAX", 10),
        "window_ms": _env_int("RATE_LIMIT_STRICT_WINDOW_MS", 60_000),
    }
    RATE_LIMIT_SWEEP_SECONDS = _env_int("RATE_LIMIT_SWEEP_SECONDS", 300)

    # Number of reverse proxies in front of the app whose X-Forwarded-For is trusted
    TRUSTED_PROXY_COUNT = _env_int("TRUSTED_PROXY_COUNT", 0)

    # Redis
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Celery
    CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
    CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", os.getenv("REDIS_URL", "redis://localhost:6379/0"))
    CELERY_TASK_ALWAYS_EAGER = False

    # Mail
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() == "true"
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@example.com")
    MAIL_SUPPRESS_SEND = False

    # Scheduled jobs
    CRON_SECRET = os.getenv("CRON_SECRET")
    RENEWAL_REMINDER_DAYS = _env_int("RENEWAL_REMINDER_DAYS", 7)

    # Observability
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_REQUESTS = os.getenv("LOG_REQUESTS", "false").lower() == "true"
    SENTRY_DSN = os.getenv("SENTRY_DSN")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0"))

    # CORS
    CORS_ORIGINS = [o for o in os.getenv("CORS_ORIGINS", "").split(",") if o]

    @classmethod
    def validate(cls):
        """Hook for environments that must refuse to start without secrets."""
        return cls
