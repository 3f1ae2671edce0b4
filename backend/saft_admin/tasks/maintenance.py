"""Maintenance sweeps: line-item reconciliation and duplicate number repair.

Both actors are idempotent, so a retried or duplicated message is harmless.
The Redis locks only keep two workers from sweeping the same data at once;
number allocation stays correct without them.
"""

import asyncio

import dramatiq
import structlog

from saft_admin.db import task_db_session
from saft_admin.models.enums import AggregateKind
from saft_admin.services.numbering import DuplicateNumberRepair
from saft_admin.services.reconciliation import LineItemReconciler
from saft_admin.utils.redis_lock import LockUnavailable, RedisLock

logger = structlog.get_logger(__name__)

# Lock settings
RECONCILE_LOCK_TTL = 600  # 10 minutes
REPAIR_LOCK_TTL = 600


@dramatiq.actor(max_retries=3, min_backoff=1000, max_backoff=60000)
def reconcile_line_items(kind: str | None = None) -> None:
    """Reconcile every order and/or invoice against its line items.

    Args:
        kind: "order" or "invoice"; both when omitted.
    """
    aggregate_kind = AggregateKind(kind) if kind else None
    try:
        with RedisLock(f"reconcile:{kind or 'all'}", ttl=RECONCILE_LOCK_TTL, raise_exc=True):
            asyncio.run(_reconcile_line_items(aggregate_kind))
    except LockUnavailable:
        logger.debug("Reconciliation sweep already running, skipping", kind=kind)


async def _reconcile_line_items(kind: AggregateKind | None) -> None:
    async with task_db_session() as session:
        results = await LineItemReconciler(session).reconcile_all(kind)

    repaired = sum(1 for result in results if result.changed)
    logger.info("Reconciliation task complete", kind=kind, aggregates=len(results), repaired=repaired)


@dramatiq.actor(max_retries=3, min_backoff=1000, max_backoff=60000)
def repair_duplicate_numbers(series_name: str) -> None:
    """Renumber records sharing a number with an older record in ``series_name``.

    AllocationExhausted propagates so Dramatiq retries the whole repair.
    """
    try:
        with RedisLock(f"repair:{series_name}", ttl=REPAIR_LOCK_TTL, raise_exc=True):
            asyncio.run(_repair_duplicate_numbers(series_name))
    except LockUnavailable:
        logger.debug("Duplicate repair already running, skipping", series=series_name)


async def _repair_duplicate_numbers(series_name: str) -> None:
    async with task_db_session() as session:
        report = await DuplicateNumberRepair(session).repair_duplicates(series_name)

    logger.info(
        "Duplicate repair task complete",
        series=series_name,
        duplicate_groups=report.duplicate_groups,
        renumbered=len(report.renumbered),
    )
