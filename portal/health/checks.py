import logging
import time

import redis
from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from portal.extensions import db, get_redis_client

logger = logging.getLogger(__name__)


def _check_database():
    start = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        latency = round((time.time() - start) * 1000, 2)
        return {"status": "ok", "latency_ms": latency}
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database health check failed: {e}")
        return {"status": "error", "error": "database unavailable"}


def _check_redis():
    if current_app.config.get("RATE_LIMIT_STORAGE") != "redis":
        return {"status": "skipped", "reason": "rate limits stored in memory"}

    client = get_redis_client()
    if client is None:
        return {"status": "error", "error": "redis client not initialized"}

    start = time.time()
    try:
        client.ping()
        latency = round((time.time() - start) * 1000, 2)
        return {"status": "ok", "latency_ms": latency}
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return {"status": "error", "error": "redis unavailable"}


def run_health_checks():
    """
    Readiness checks for the dependencies requests cannot be served without.
    """
    started = time.time()

    checks = {
        "database": _check_database(),
        "redis": _check_redis(),
    }

    overall = "ok"
    for c in checks.values():
        if c["status"] == "error":
            overall = "degraded"

    return {
        "status": overall,
        "timestamp": int(time.time()),
        "checks": checks,
        "duration_ms": round((time.time() - started) * 1000, 2),
        "environment": current_app.config.get("ENV", "unknown"),
    }
