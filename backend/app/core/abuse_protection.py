"""Failure counters and temporary lockouts (MFA verification)."""

from redis.exceptions import RedisError

from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import get_redis_client

logger = get_logger(__name__)


def _fail_key(user_id: str) -> str:
    return f"fail:mfa:user:{user_id}"


def _lock_key(user_id: str) -> str:
    return f"lock:mfa:user:{user_id}"


def record_mfa_failure(user_id: str) -> int:
    """Record a failed MFA attempt. Returns the failure count in the window."""
    redis_client = get_redis_client()
    if redis_client is None:
        return 0

    try:
        fail_key = _fail_key(user_id)
        count = redis_client.incr(fail_key)
        if count == 1:
            redis_client.expire(fail_key, settings.MFA_FAIL_WINDOW)

        if count >= settings.MFA_FAIL_THRESHOLD:
            redis_client.setex(_lock_key(user_id), settings.MFA_LOCK_TTL, "1")
            logger.warning(
                "MFA locked due to repeated failures",
                extra={
                    "event_type": "mfa_locked",
                    "user_id": user_id,
                    "failure_count": count,
                    "lock_ttl": settings.MFA_LOCK_TTL,
                },
            )
        return count
    except RedisError as e:
        logger.error(f"Failed to record MFA failure: {e}", exc_info=True)
        return 0


def clear_mfa_failures(user_id: str) -> None:
    """Clear failure counters on successful verification."""
    redis_client = get_redis_client()
    if redis_client is None:
        return

    try:
        redis_client.delete(_fail_key(user_id))
    except RedisError as e:
        logger.error(f"Failed to clear MFA failures: {e}", exc_info=True)


def mfa_lock_remaining(user_id: str) -> int:
    """Seconds left on the user's MFA lock, 0 if not locked (or Redis is down)."""
    redis_client = get_redis_client()
    if redis_client is None:
        return 0

    try:
        ttl = redis_client.ttl(_lock_key(user_id))
    except RedisError as e:
        logger.error(f"Failed to check MFA lock: {e}", exc_info=True)
        return 0
    return ttl if ttl and ttl > 0 else 0
