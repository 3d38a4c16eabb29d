import logging
import threading
from collections import namedtuple

logger = logging.getLogger(__name__)

# A fixed window: requests counted so far and when the window closes (epoch ms)
Window = namedtuple("Window", ["count", "reset_at_ms"])


class RateLimitStore:
    """
    Storage for fixed-window counters.

    A window is expired once ``now_ms >= reset_at_ms``; an expired window is
    replaced by a fresh one on the next increment.
    """

    def get(self, key, now_ms):
        """Return the live window for ``key`` or None."""
        raise NotImplementedError

    def increment(self, key, window_ms, now_ms):
        """Count one request against ``key`` and return the resulting window."""
        raise NotImplementedError

    def expire(self, key):
        raise NotImplementedError

    def sweep(self, now_ms):
        """Drop expired windows. Returns how many were removed."""
        raise NotImplementedError

    def clear(self):
        raise NotImplementedError


class InMemoryRateLimitStore(RateLimitStore):
    """
    Process-local store. Counters are not shared between workers.

    Expired windows are swept from within ``increment`` at most once per
    ``sweep_interval_ms``.
    """

    def __init__(self, sweep_interval_ms=300_000):
        self._windows = {}
        self._lock = threading.Lock()
        self.sweep_interval_ms = sweep_interval_ms
        self._last_sweep_ms = None

    def get(self, key, now_ms):
        with self._lock:
            window = self._windows.get(key)
            if window is None or now_ms >= window.reset_at_ms:
                return None
            return window

    def increment(self, key, window_ms, now_ms):
        with self._lock:
            if self._last_sweep_ms is None:
                self._last_sweep_ms = now_ms
            elif self.sweep_interval_ms and now_ms - self._last_sweep_ms >= self.sweep_interval_ms:
                self._sweep_locked(now_ms)

            window = self._windows.get(key)
            if window is None or now_ms >= window.reset_at_ms:
                window = Window(count=1, reset_at_ms=now_ms + window_ms)
            else:
                window = Window(count=window.count + 1, reset_at_ms=window.reset_at_ms)
            self._windows[key] = window
            return window

    def expire(self, key):
        with self._lock:
            self._windows.pop(key, None)

    def sweep(self, now_ms):
        with self._lock:
            return self._sweep_locked(now_ms)

    def _sweep_locked(self, now_ms):
        # Caller holds self._lock
        expired = [key for key, window in self._windows.items() if now_ms >= window.reset_at_ms]
        for key in expired:
            del self._windows[key]
        self._last_sweep_ms = now_ms
        return len(expired)

    def clear(self):
        with self._lock:
            self._windows.clear()

    def __len__(self):
        return len(self._windows)


class RedisRateLimitStore(RateLimitStore):
    """
    Redis-backed store shared by every process and instance.

    The key's TTL is the window: INCR counts, PEXPIRE is set on the first hit
    and PTTL reports the time left. Redis drops the key when the window closes.
    """

    def __init__(self, redis_client, prefix="rate_limit"):
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, key):
        return f"{self.prefix}:{key}"

    def get(self, key, now_ms):
        pipe = self.redis.pipeline()
        pipe.get(self._key(key))
        pipe.pttl(self._key(key))
        count, ttl = pipe.execute()

        if count is None or ttl is None or ttl <= 0:
            return None
        return Window(count=int(count), reset_at_ms=now_ms + ttl)

    def increment(self, key, window_ms, now_ms):
        redis_key = self._key(key)

        pipe = self.redis.pipeline()
        pipe.incr(redis_key, 1)
        pipe.pttl(redis_key)
        count, ttl = pipe.execute()

        # -1: key exists without expiry (first hit, or a lost PEXPIRE)
        if count == 1 or ttl is None or ttl < 0:
            self.redis.pexpire(redis_key, window_ms)
            ttl = window_ms

        return Window(count=int(count), reset_at_ms=now_ms + ttl)

    def expire(self, key):
        self.redis.delete(self._key(key))

    def sweep(self, now_ms):
        # Redis evicts closed windows through key TTLs
        return 0

    def clear(self):
        keys = list(self.redis.scan_iter(match=f"{self.prefix}:*"))
        if keys:
            self.redis.delete(*keys)
