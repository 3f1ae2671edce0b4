"""Race-condition-safe document number allocation using compare-and-set."""

from collections.abc import Callable, Mapping
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from saft_admin.config import settings
from saft_admin.models.defaults import utc_now
from saft_admin.models.series_counter import SeriesCounter
from saft_admin.services.exceptions import PersistenceFailure
from saft_admin.services.numbering.exceptions import (
    AllocationExhausted,
    CounterConflict,
    SeriesCounterCorrupted,
)
from saft_admin.services.numbering.identifiers import (
    epoch_millis,
    format_fallback_identifier,
    format_identifier,
    max_suffix,
)
from saft_admin.services.numbering.series import SeriesDefinition, get_series
from saft_admin.utils.retry import ConflictRetryConfig, get_conflict_retrying

logger = structlog.get_logger(__name__)

# Degraded numbers handed out by this process
_issued_fallbacks: set[str] = set()


class SequenceAllocator:
    """Issues the next number of a series, never the same one twice.

    Each attempt reads the series counter, proposes ``last_issued + 1`` and
    commits it with ``UPDATE ... WHERE last_issued = <value read>``. Zero
    updated rows means another writer got there first; the attempt is retried
    with a fresh read. Correctness relies on the database alone, so any number
    of processes may allocate concurrently.

    The allocator commits its session after every attempt. Give it a session
    without pending changes, and allocate before adding the record that will
    carry the number.

    Usage:
        allocator = SequenceAllocator(session)
        order_number = await allocator.allocate("orders")
        session.add(Order(order_number=order_number, ...))
        await session.commit()
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        series: Mapping[str, SeriesDefinition] | None = None,
        max_attempts: int | None = None,
        backoff_max: float | None = None,
        fallback_enabled: bool | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.series = series
        self.max_attempts = max_attempts if max_attempts is not None else settings.allocation_max_attempts
        self.backoff_max = backoff_max if backoff_max is not None else settings.allocation_backoff_max
        self.fallback_enabled = (
            fallback_enabled if fallback_enabled is not None else settings.sequence_fallback_enabled
        )
        self.clock = clock

    async def allocate(self, series_name: str) -> str:
        """Return a number never handed out before for ``series_name``.

        Raises:
            SeriesNotConfigured: unknown series (not retryable).
            AllocationExhausted: retry ceiling hit (retry the whole operation).
            SeriesCounterCorrupted: counter unusable and fallback disabled.
            PersistenceFailure: database error other than a lost race.
        """
        definition = get_series(series_name, self.series)
        try:
            return await self._allocate_dense(definition)
        except SeriesCounterCorrupted as e:
            if not self.fallback_enabled:
                raise
            logger.warning(
                "Series counter corrupted, falling back to degraded numbering",
                series=definition.name,
                reason=e.reason,
            )
            return await self._allocate_degraded(definition)

    async def _allocate_dense(self, definition: SeriesDefinition) -> str:
        identifier: str | None = None
        retrying = get_conflict_retrying(
            CounterConflict,
            ConflictRetryConfig(max_attempts=self.max_attempts, max_wait=self.backoff_max),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    identifier = await self._attempt(definition, attempt.retry_state.attempt_number)
        except CounterConflict as e:
            logger.warning(
                "Number allocation exhausted",
                series=definition.name,
                max_attempts=self.max_attempts,
                error=str(e),
            )
            raise AllocationExhausted(definition.name, self.max_attempts) from e
        except DBAPIError as e:
            raise PersistenceFailure(f"Allocating a number in series {definition.name!r} failed: {e}") from e

        assert identifier is not None
        return identifier

    async def _attempt(self, definition: SeriesDefinition, attempt_number: int) -> str:
        """One read + one conditional write. Raises CounterConflict to retry."""
        counter = await self._load_counter(definition)
        self._check_counter(definition, counter)

        expected = counter.last_issued
        value = expected + 1
        candidate = format_identifier(definition.prefix, value, definition.pad_width)

        async with self.session.begin_nested():
            result = await self.session.execute(
                update(SeriesCounter)
                .where(
                    SeriesCounter.series_name == definition.name,  # type: ignore[arg-type]
                    SeriesCounter.last_issued == expected,  # type: ignore[arg-type]
                )
                .values(last_issued=value, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        advanced = result.rowcount == 1  # type: ignore[attr-defined]

        # Records imported or numbered outside the allocator may already hold the candidate
        in_use = advanced and await self._identifier_in_use(definition, candidate)
        if in_use:
            await self._catch_up(definition)
        await self.session.commit()

        if not advanced:
            logger.debug(
                "Lost counter race, retrying",
                series=definition.name,
                expected=expected,
                attempt=attempt_number,
            )
            raise CounterConflict(f"Counter for series {definition.name!r} moved past {expected}")
        if in_use:
            logger.warning(
                "Candidate number already in use, retrying",
                series=definition.name,
                number=candidate,
                attempt=attempt_number,
            )
            raise CounterConflict(f"Number {candidate} is already in use")

        logger.info("Allocated number", series=definition.name, number=candidate, attempt=attempt_number)
        return candidate

    async def _read_counter(self, definition: SeriesDefinition) -> SeriesCounter | None:
        statement = (
            select(SeriesCounter)
            .where(SeriesCounter.series_name == definition.name)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def _load_counter(self, definition: SeriesDefinition) -> SeriesCounter:
        """Read the counter, creating it on first use seeded from existing numbers."""
        counter = await self._read_counter(definition)
        if counter is not None:
            return counter

        seed = await self._existing_max_suffix(definition)
        counter = SeriesCounter(
            series_name=definition.name,
            prefix=definition.prefix,
            pad_width=definition.pad_width,
            last_issued=seed,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(counter)
                await self.session.flush()
        except IntegrityError as e:
            # Another writer created the row between our read and insert
            await self.session.commit()
            raise CounterConflict(f"Counter for series {definition.name!r} created concurrently") from e

        await self.session.commit()
        logger.info("Created series counter", series=definition.name, last_issued=seed)
        return counter

    @staticmethod
    def _check_counter(definition: SeriesDefinition, counter: SeriesCounter) -> None:
        if counter.last_issued < 0:
            raise SeriesCounterCorrupted(definition.name, f"last_issued is negative ({counter.last_issued})")
        if counter.prefix != definition.prefix:
            raise SeriesCounterCorrupted(
                definition.name,
                f"stored prefix {counter.prefix!r} does not match configured {definition.prefix!r}",
            )
        if counter.pad_width != definition.pad_width:
            raise SeriesCounterCorrupted(
                definition.name,
                f"stored pad width {counter.pad_width} does not match configured {definition.pad_width}",
            )

    async def _existing_max_suffix(self, definition: SeriesDefinition) -> int:
        """MAX(suffix) over the series' numbers; unparseable ones are skipped."""
        column = definition.number_column
        result = await self.session.execute(select(column).where(column.startswith(definition.prefix, autoescape=True)))
        return max_suffix(result.scalars().all(), definition.prefix)

    async def _identifier_in_use(self, definition: SeriesDefinition, identifier: str) -> bool:
        statement = select(definition.model.id).where(definition.number_column == identifier).limit(1)
        result = await self.session.execute(statement)
        return result.first() is not None

    async def _catch_up(self, definition: SeriesDefinition) -> None:
        """Move the counter forward to the highest number already on record."""
        seed = await self._existing_max_suffix(definition)
        await self.session.execute(
            update(SeriesCounter)
            .where(
                SeriesCounter.series_name == definition.name,  # type: ignore[arg-type]
                SeriesCounter.last_issued < seed,  # type: ignore[arg-type]
            )
            .values(last_issued=seed, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    async def _allocate_degraded(self, definition: SeriesDefinition) -> str:
        """Time-derived number; unique but not dense. Flagged in the logs.

        Numbers already handed out by this process or held by a record are
        skipped by moving one millisecond forward, so callers within the same
        millisecond still get distinct numbers. Across processes the unique
        index on the number column is the final guard.
        """
        millis = epoch_millis(self.clock())
        try:
            for attempt_number in range(1, self.max_attempts + 1):
                candidate = format_fallback_identifier(definition.prefix, millis)
                if candidate not in _issued_fallbacks and not await self._identifier_in_use(definition, candidate):
                    await self.session.commit()
                    _issued_fallbacks.add(candidate)
                    logger.warning(
                        "Allocated degraded number",
                        series=definition.name,
                        number=candidate,
                        attempt=attempt_number,
                        degraded=True,
                    )
                    return candidate
                millis += 1
        except DBAPIError as e:
            raise PersistenceFailure(f"Allocating a number in series {definition.name!r} failed: {e}") from e

        raise AllocationExhausted(definition.name, self.max_attempts)
