"""Redis-based advisory locks for serializing critical sections."""

import uuid
from contextlib import contextmanager
from typing import Generator

from redis.exceptions import RedisError

from app.core.logging import get_logger
from app.core.redis_client import get_redis_client

logger = get_logger(__name__)

# Default lock TTL (long enough for one signup account write)
DEFAULT_LOCK_TTL = 10

# Delete the key only if we still own it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


@contextmanager
def redis_lock(lock_key: str, ttl_seconds: int = DEFAULT_LOCK_TTL) -> Generator[bool, None, None]:
    """
    Acquire a Redis lock with automatic release.

    Usage:
        with redis_lock("signup:email:a@b.com") as acquired:
            if not acquired:
                # Someone else holds it
                ...

    Args:
        lock_key: Redis key for the lock
        ttl_seconds: Lock TTL in seconds (auto-releases after this time)

    Yields:
        True if lock acquired (or Redis is unavailable), False otherwise
    """
    redis_client = get_redis_client()
    if redis_client is None:
        # Redis unavailable - fail open, the database constraint still applies
        yield True
        return

    token = uuid.uuid4().hex
    try:
        acquired = bool(redis_client.set(lock_key, token, nx=True, ex=ttl_seconds))
    except RedisError as e:
        logger.error(f"Error acquiring lock {lock_key}: {e}")
        yield True
        return

    if not acquired:
        logger.debug(f"Lock already held: {lock_key}")
    try:
        yield acquired
    finally:
        if acquired:
            try:
                redis_client.eval(_RELEASE_SCRIPT, 1, lock_key, token)
            except RedisError as e:
                logger.error(f"Error releasing lock {lock_key}: {e}")
