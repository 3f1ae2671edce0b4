import asyncio
from datetime import UTC, datetime

import pytest
from sqlalchemy import select, update

from saft_admin.models import SeriesCounter
from saft_admin.services.numbering import (
    INVOICES,
    ORDERS,
    AllocationExhausted,
    SequenceAllocator,
    SeriesCounterCorrupted,
    SeriesNotConfigured,
)
from saft_admin.services.numbering.identifiers import format_identifier


class StaleReadAllocator(SequenceAllocator):
    """Reads a counter value one behind the stored one, as if another writer just committed."""

    stale_reads = 0

    async def _read_counter(self, definition):
        counter = await super()._read_counter(definition)
        if counter is not None and self.stale_reads > 0:
            self.stale_reads -= 1
            return SeriesCounter(
                series_name=counter.series_name,
                prefix=counter.prefix,
                pad_width=counter.pad_width,
                last_issued=counter.last_issued - 1,
            )
        return counter


class InterleavedAllocator(SequenceAllocator):
    """Ends its read transaction and waits at ``barrier`` after the first counter read.

    Every allocator sharing the barrier has read the same ``last_issued``
    before any of them runs its conditional update.
    """

    def __init__(self, session, barrier, **kwargs):
        super().__init__(session, **kwargs)
        self.barrier = barrier
        self.reads = 0

    async def _load_counter(self, definition):
        counter = await super()._load_counter(definition)
        self.reads += 1
        if self.reads == 1:
            await self.session.commit()
            await self.barrier.wait()
        return counter


async def last_issued(session, series_name):
    result = await session.execute(
        select(SeriesCounter.last_issued).where(SeriesCounter.series_name == series_name)
    )
    value = result.scalar_one()
    await session.commit()
    return value


async def test_sequential_allocations(session):
    allocator = SequenceAllocator(session)

    numbers = [await allocator.allocate(ORDERS) for _ in range(3)]

    assert numbers == ["SAFT-00001", "SAFT-00002", "SAFT-00003"]


async def test_abandoned_number_is_a_gap_never_reissued(session):
    allocator = SequenceAllocator(session)

    await allocator.allocate(ORDERS)  # caller failed before storing the order
    second = await allocator.allocate(ORDERS)

    assert second == "SAFT-00002"
    assert await last_issued(session, ORDERS) == 2


async def test_series_are_independent(session):
    allocator = SequenceAllocator(session)

    assert await allocator.allocate(ORDERS) == "SAFT-00001"
    assert await allocator.allocate(INVOICES) == "INV-00001"
    assert await allocator.allocate(ORDERS) == "SAFT-00002"
    assert await allocator.allocate(INVOICES) == "INV-00002"


async def test_counter_is_seeded_from_existing_numbers(session, order_factory):
    await order_factory("SAFT-00007")
    await order_factory("SAFT-legacy")
    await order_factory("LEGACY-00099")

    number = await SequenceAllocator(session).allocate(ORDERS)

    assert number == "SAFT-00008"


async def test_number_already_held_by_a_record_is_skipped(session, order_factory):
    allocator = SequenceAllocator(session)
    assert await allocator.allocate(ORDERS) == "SAFT-00001"

    # Imported behind the allocator's back
    await order_factory("SAFT-00002")
    await order_factory("SAFT-00003")

    assert await allocator.allocate(ORDERS) == "SAFT-00004"
    assert await last_issued(session, ORDERS) == 4


async def test_lost_race_is_retried(session):
    await SequenceAllocator(session).allocate(ORDERS)

    allocator = StaleReadAllocator(session, backoff_max=0)
    allocator.stale_reads = 1

    assert await allocator.allocate(ORDERS) == "SAFT-00002"
    assert allocator.stale_reads == 0


async def test_allocation_exhausted_after_max_attempts(session):
    await SequenceAllocator(session).allocate(ORDERS)

    allocator = StaleReadAllocator(session, max_attempts=3, backoff_max=0)
    allocator.stale_reads = 100

    with pytest.raises(AllocationExhausted) as exc_info:
        await allocator.allocate(ORDERS)

    assert exc_info.value.attempts == 3
    assert allocator.stale_reads == 97
    assert await last_issued(session, ORDERS) == 1


async def test_unknown_series(session):
    with pytest.raises(SeriesNotConfigured):
        await SequenceAllocator(session).allocate("credit-notes")


async def corrupt_counter(session, **values):
    await session.execute(update(SeriesCounter).where(SeriesCounter.series_name == ORDERS).values(**values))
    await session.commit()


@pytest.mark.parametrize(
    ("corruption", "moment"),
    [
        ({"prefix": "OLD-"}, datetime(2026, 10, 19, 8, 30, tzinfo=UTC)),
        ({"pad_width": 3}, datetime(2026, 10, 19, 8, 31, tzinfo=UTC)),
        ({"last_issued": -5}, datetime(2026, 10, 19, 8, 32, tzinfo=UTC)),
    ],
)
async def test_corrupted_counter_falls_back_to_time_derived_number(session, corruption, moment):
    await SequenceAllocator(session).allocate(ORDERS)
    await corrupt_counter(session, **corruption)

    number = await SequenceAllocator(session, clock=lambda: moment).allocate(ORDERS)

    assert number == f"SAFT-T{int(moment.timestamp() * 1000)}"


async def test_degraded_numbers_within_one_millisecond_are_distinct(session, order_factory):
    await SequenceAllocator(session).allocate(ORDERS)
    await corrupt_counter(session, prefix="OLD-")
    moment = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)
    millis = int(moment.timestamp() * 1000)
    await order_factory(f"SAFT-T{millis + 2}")
    allocator = SequenceAllocator(session, clock=lambda: moment)

    numbers = [await allocator.allocate(ORDERS) for _ in range(3)]

    assert numbers == [f"SAFT-T{millis}", f"SAFT-T{millis + 1}", f"SAFT-T{millis + 3}"]


async def test_corrupted_counter_raises_when_fallback_disabled(session):
    await SequenceAllocator(session).allocate(ORDERS)
    await corrupt_counter(session, prefix="OLD-")

    with pytest.raises(SeriesCounterCorrupted) as exc_info:
        await SequenceAllocator(session, fallback_enabled=False).allocate(ORDERS)

    assert exc_info.value.series_name == ORDERS


async def test_many_sessions_get_unique_dense_numbers(session_maker):
    async def allocate_one():
        # AllocationExhausted is retryable: resubmit the whole operation
        while True:
            async with session_maker() as session:
                try:
                    return await SequenceAllocator(session, backoff_max=0).allocate(ORDERS)
                except AllocationExhausted:
                    continue

    numbers = await asyncio.gather(*(allocate_one() for _ in range(100)))

    assert len(set(numbers)) == 100
    assert sorted(numbers) == [format_identifier("SAFT-", value, 5) for value in range(1, 101)]


async def test_interleaved_readers_one_wins_the_other_retries(session, session_maker):
    await SequenceAllocator(session).allocate(ORDERS)
    barrier = asyncio.Barrier(2)

    async def allocate_one():
        async with session_maker() as own_session:
            allocator = InterleavedAllocator(own_session, barrier, backoff_max=0)
            return allocator, await allocator.allocate(ORDERS)

    results = await asyncio.gather(allocate_one(), allocate_one())

    assert sorted(number for _, number in results) == ["SAFT-00002", "SAFT-00003"]
    # Both read last_issued == 1; only one update matched, the loser re-read once
    assert sorted(allocator.reads for allocator, _ in results) == [1, 2]
    assert await last_issued(session, ORDERS) == 3
