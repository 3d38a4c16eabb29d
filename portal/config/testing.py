from .base import BaseConfig


class TestingConfig(BaseConfig):
    """
    Configuration used by the test suite.
    """

    ENV = "testing"
    TESTING = True
    DEBUG = False

    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Hashing cost is irrelevant for tests
    API_TOKEN_HASH_METHOD = "pbkdf2:sha256:1000"

    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    STRIPE_PRICE_IDS = {
        "tier1": "",
        "tier2": "price_tier2",
        "tier3": "price_tier3",
        "tier4": "price_tier4",
    }

    RATE_LIMIT_STORAGE = "memory"
    RATE_LIMIT_DEFAULT = {"max_requests": 100, "window_ms": 60_000}
    RATE_LIMIT_STRICT = {"max_requests": 10, "window_ms": 60_000}

    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
    CELERY_TASK_ALWAYS_EAGER = True

    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = "test@example.com"

    CRON_SECRET = "test-cron-secret"
    SENTRY_DSN = None
