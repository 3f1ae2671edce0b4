"""Shared retry utilities using tenacity."""

from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_none,
    wait_random_exponential,
)


@dataclass
class ConflictRetryConfig:
    """Configuration for retrying optimistic writes that lost a race.

    Waits are randomized so callers that collided once do not collide again
    in lockstep. ``max_wait=0`` retries immediately.
    """

    max_attempts: int = 10
    max_wait: float = 0.2
    multiplier: float = 0.01


def get_conflict_retrying(
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
    config: ConflictRetryConfig | None = None,
) -> AsyncRetrying:
    """Get configured AsyncRetrying for optimistic-concurrency conflicts.

    Usage:
        async for attempt in get_conflict_retrying(CounterConflict):
            with attempt:
                value = await try_compare_and_set()

    Exceptions other than ``retry_on`` stop the loop immediately. After the
    last attempt the final conflict is re-raised (``reraise=True``).

    Args:
        retry_on: Exception type(s) signalling a lost race.
        config: Optional retry configuration. Uses defaults if not provided.

    Returns:
        AsyncRetrying instance.
    """
    cfg = config or ConflictRetryConfig()
    wait = wait_random_exponential(multiplier=cfg.multiplier, max=cfg.max_wait) if cfg.max_wait > 0 else wait_none()
    return AsyncRetrying(
        retry=retry_if_exception_type(retry_on),
        stop=stop_after_attempt(cfg.max_attempts),
        wait=wait,
        reraise=True,
    )
