"""Shared Redis client."""

from functools import cache

import redis

from saft_admin.config import settings


@cache
def get_redis_client() -> redis.Redis:
    """Redis client reused across all utilities, created on first use."""
    return redis.from_url(settings.redis_url)  # type: ignore[no-untyped-call]
