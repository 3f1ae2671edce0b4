"""Utility functions and helpers."""

from saft_admin.utils.redis_lock import LockUnavailable, RedisLock
from saft_admin.utils.retry import ConflictRetryConfig, get_conflict_retrying

__all__ = [
    "ConflictRetryConfig",
    "LockUnavailable",
    "RedisLock",
    "get_conflict_retrying",
]
