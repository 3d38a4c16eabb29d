import logging

from .decorators import apply_rate_limit_headers, get_rate_limiter, rate_limit
from .limiter import (
    DEFAULT_CONFIG,
    STRICT_CONFIG,
    FixedWindowRateLimiter,
    RateLimitConfig,
    RateLimitResult,
)
from .store import InMemoryRateLimitStore, RateLimitStore, RedisRateLimitStore, Window

logger = logging.getLogger(__name__)


def init_rate_limiter(app, redis_client=None):
    """Build the limiter from app config and register it on ``app.extensions``."""
    storage = app.config.get("RATE_LIMIT_STORAGE", "memory")

    if storage == "redis":
        if redis_client is None:
            raise RuntimeError("RATE_LIMIT_STORAGE=redis requires a Redis client")
        store = RedisRateLimitStore(redis_client)
    elif storage == "memory":
        store = InMemoryRateLimitStore(sweep_interval_ms=app.config.get("RATE_LIMIT_SWEEP_SECONDS", 300) * 1000)
    else:
        raise ValueError(f"Unknown RATE_LIMIT_STORAGE: {storage}")

    configs = {
        "default": RateLimitConfig(**app.config.get("RATE_LIMIT_DEFAULT", DEFAULT_CONFIG._asdict())),
        "strict": RateLimitConfig(**app.config.get("RATE_LIMIT_STRICT", STRICT_CONFIG._asdict())),
    }

    limiter = FixedWindowRateLimiter(store, configs=configs)
    app.extensions["rate_limiter"] = limiter
    logger.info(f"Rate limiter initialized with {storage} storage")
    return limiter


__all__ = [
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
    "FixedWindowRateLimiter",
    "InMemoryRateLimitStore",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitStore",
    "RedisRateLimitStore",
    "Window",
    "apply_rate_limit_headers",
    "get_rate_limiter",
    "init_rate_limiter",
    "rate_limit",
]
