import logging
import time
from collections import namedtuple

logger = logging.getLogger(__name__)

RateLimitConfig = namedtuple("RateLimitConfig", ["max_requests", "window_ms"])

DEFAULT_CONFIG = RateLimitConfig(max_requests=100, window_ms=60_000)
STRICT_CONFIG = RateLimitConfig(max_requests=10, window_ms=60_000)

RateLimitResult = namedtuple(
    "RateLimitResult",
    ["allowed", "limit", "remaining", "reset_at_ms", "retry_after_ms"],
)


def _now_ms():
    return int(time.time() * 1000)


class FixedWindowRateLimiter:
    """
    Counts requests per identifier in fixed windows.

    A caller can burst up to twice the ceiling across a window boundary;
    that is inherent to fixed windows.
    """

    def __init__(self, store, configs=None, clock=None):
        self.store = store
        self.configs = {
            "default": DEFAULT_CONFIG,
            "strict": STRICT_CONFIG,
        }
        if configs:
            self.configs.update(configs)
        self.clock = clock or _now_ms

    def get_config(self, name):
        try:
            return self.configs[name]
        except KeyError:
            raise ValueError(f"Unknown rate limit configuration: {name}")

    def check(self, identifier, config=None) -> RateLimitResult:
        """Count one request for ``identifier`` and decide whether it may proceed."""
        if config is None:
            config = self.configs["default"]
        elif isinstance(config, str):
            config = self.get_config(config)

        now = self.clock()
        window = self.store.increment(identifier, config.window_ms, now)

        if window.count > config.max_requests:
            logger.info(
                "Rate limit exceeded",
                extra={"identifier": identifier, "limit": config.max_requests},
            )
            return RateLimitResult(
                allowed=False,
                limit=config.max_requests,
                remaining=0,
                reset_at_ms=window.reset_at_ms,
                retry_after_ms=max(0, window.reset_at_ms - now),
            )

        return RateLimitResult(
            allowed=True,
            limit=config.max_requests,
            remaining=config.max_requests - window.count,
            reset_at_ms=window.reset_at_ms,
            retry_after_ms=0,
        )

    def remaining(self, identifier, config=None):
        """Requests left in the current window without counting one."""
        config = config or self.configs["default"]
        window = self.store.get(identifier, self.clock())
        if window is None:
            return config.max_requests
        return max(0, config.max_requests - window.count)

    def reset(self, identifier):
        self.store.expire(identifier)

    def sweep(self):
        removed = self.store.sweep(self.clock())
        if removed:
            logger.debug(f"Swept {removed} expired rate limit windows")
        return removed
