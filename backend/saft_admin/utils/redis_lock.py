"""Redis-based distributed locking utilities."""

from collections.abc import Generator
from contextlib import contextmanager

import redis

from saft_admin.utils.redis import get_redis_client


class LockUnavailable(Exception):
    """Raised when lock cannot be acquired and raise_exc=True."""

    pass


@contextmanager
def RedisLock(
    key: str,
    ttl: int = 60,
    *,
    auto_release: bool = True,
    raise_exc: bool = False,
    client: redis.Redis | None = None,
) -> Generator[bool]:
    """Distributed lock using Redis SET NX with TTL.

    Yields whether the lock was acquired, so callers can skip their work when
    another process holds it:

        with RedisLock("reconcile:order", ttl=600) as acquired:
            if not acquired:
                return
            do_work()

    With raise_exc=True an unavailable lock raises instead:

        try:
            with RedisLock("my-lock", ttl=60, raise_exc=True):
                do_work()
        except LockUnavailable:
            logger.debug("Lock not acquired, skipping")

    Args:
        key: Redis key for the lock (will be prefixed with "RedisLock:")
        ttl: Time-to-live in seconds
        auto_release: If True, release lock on context exit. If False, let TTL expire.
        raise_exc: If True, raise LockUnavailable when lock not acquired.
        client: Redis client to use instead of the shared one.
    """
    redis_client = client or get_redis_client()
    full_key = f"RedisLock:{key}"
    acquired = bool(redis_client.set(full_key, "1", nx=True, ex=ttl))

    if not acquired:
        if raise_exc:
            raise LockUnavailable(f"Could not acquire lock: {full_key}")
        yield False
        return

    try:
        yield True
    finally:
        if auto_release:
            redis_client.delete(full_key)
