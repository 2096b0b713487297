"""Rate limiting utilities using Redis."""

from typing import Tuple

from fastapi import Request, status
from redis.exceptions import RedisError

from app.core.app_exceptions import raise_app_error
from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import get_redis_client
from app.core.security_logging import log_security_event

logger = get_logger(__name__)


def rate_limit(key: str, limit: int, window_seconds: int) -> Tuple[bool, int, int]:
    """
    Fixed-window counter.

    Args:
        key: Redis key for the rate limit counter
        limit: Maximum number of requests allowed
        window_seconds: Time window in seconds

    Returns:
        Tuple of (allowed: bool, remaining: int, reset_seconds: int)
    """
    redis_client = get_redis_client()
    if redis_client is None:
        # If Redis is unavailable and not required, allow the request
        if not settings.REDIS_REQUIRED:
            return True, limit, window_seconds
        logger.error("Redis unavailable but required for rate limiting")
        return False, 0, window_seconds

    try:
        pipe = redis_client.pipeline()
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = pipe.execute()
        if ttl is None or ttl < 0:
            redis_client.expire(key, window_seconds)
            ttl = window_seconds

        if count > limit:
            return False, 0, max(ttl, 0)
        return True, max(0, limit - count), max(ttl, 0)

    except RedisError as e:
        logger.error(f"Rate limit check failed: {e}", exc_info=True)
        if settings.REDIS_REQUIRED:
            return False, 0, window_seconds
        return True, limit, window_seconds


def check_rate_limit_and_raise(
    key: str, limit: int, window_seconds: int, request: Request, event_type: str = "rate_limited"
) -> None:
    """Check rate limit and raise a 429 ``AppError`` if exceeded."""
    allowed, _remaining, reset_seconds = rate_limit(key, limit, window_seconds)

    if not allowed:
        log_security_event(
            request,
            event_type=event_type,
            outcome="deny",
            reason_code="RATE_LIMITED",
        )
        raise_app_error(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code="RATE_LIMITED",
            message="Too many requests. Please try again later.",
            details={"retry_after_seconds": reset_seconds},
        )


def normalize_email_for_key(email: str) -> str:
    """Normalize email for use in Redis keys."""
    return email.lower().strip()
