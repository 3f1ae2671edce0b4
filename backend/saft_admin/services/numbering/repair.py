"""Detection and repair of duplicate document numbers.

Duplicates can only exist in data written before the unique indexes on
``orders.order_number`` / ``invoices.invoice_number`` were created (legacy
imports, the old read-max-and-increment generator). Run the repair for every
series before applying the migration that adds those indexes.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from saft_admin.models.defaults import utc_now
from saft_admin.services.exceptions import PersistenceFailure
from saft_admin.services.numbering.allocator import SequenceAllocator
from saft_admin.services.numbering.series import SeriesDefinition, get_series

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NumberedRecord:
    """Minimal view of a record carrying a document number."""

    record_id: str
    number: str
    created_at: datetime


@dataclass(frozen=True)
class Renumbering:
    """One record moved off a duplicated number."""

    record_id: str
    old_number: str
    new_number: str


@dataclass
class RepairReport:
    """Result of one repair pass over a series."""

    series_name: str
    duplicate_groups: int = 0
    renumbered: list[Renumbering] = field(default_factory=list)
    remaining_duplicate_groups: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.renumbered)


class DuplicateNumberRepair:
    """Renumbers every record that shares its number with an older record.

    Within a group of records sharing a number, the earliest created (ties
    broken by id) keeps it. Every later record gets a fresh number from
    SequenceAllocator, the same collision-safe path used for live allocation.
    Running the repair again on a repaired series changes nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        allocator: SequenceAllocator | None = None,
        *,
        series: Mapping[str, SeriesDefinition] | None = None,
    ):
        self.session = session
        self.series = series
        self.allocator = allocator or SequenceAllocator(session, series=series)

    async def find_duplicates(self, series_name: str) -> dict[str, list[NumberedRecord]]:
        """Group records by their literal number, keeping only groups of two or more.

        Each group is ordered oldest first.
        """
        definition = get_series(series_name, self.series)
        model = definition.model
        statement = select(model.id, definition.number_column, model.created_at).order_by(
            model.created_at,  # type: ignore[arg-type]
            model.id,  # type: ignore[arg-type]
        )
        result = await self.session.execute(statement)

        groups: dict[str, list[NumberedRecord]] = {}
        for record_id, number, created_at in result.all():
            groups.setdefault(number, []).append(NumberedRecord(record_id, number, created_at))
        return {number: records for number, records in groups.items() if len(records) > 1}

    async def count_duplicate_groups(self, series_name: str) -> int:
        """SELECT COUNT(*) of numbers held by more than one record."""
        definition = get_series(series_name, self.series)
        column = definition.number_column
        duplicated = select(column).group_by(column).having(func.count() > 1).subquery()
        result = await self.session.execute(select(func.count()).select_from(duplicated))
        return result.scalar_one()

    async def repair_duplicates(self, series_name: str) -> RepairReport:
        """Renumber all but the oldest record of every duplicate group."""
        definition = get_series(series_name, self.series)
        report = RepairReport(series_name=definition.name)

        try:
            duplicates = await self.find_duplicates(definition.name)
            report.duplicate_groups = len(duplicates)
            if duplicates:
                logger.warning(
                    "Found duplicate numbers",
                    series=definition.name,
                    groups=len(duplicates),
                    records=sum(len(records) for records in duplicates.values()),
                )

            for number, records in duplicates.items():
                keeper, *later = records
                logger.info("Keeping number on oldest record", number=number, record_id=keeper.record_id)
                for record in later:
                    new_number = await self.allocator.allocate(definition.name)
                    await self._assign_number(definition, record.record_id, new_number)
                    report.renumbered.append(Renumbering(record.record_id, number, new_number))
                    logger.info(
                        "Renumbered duplicate record",
                        series=definition.name,
                        record_id=record.record_id,
                        old_number=number,
                        new_number=new_number,
                    )

            report.remaining_duplicate_groups = await self.count_duplicate_groups(definition.name)
            await self.session.commit()
        except DBAPIError as e:
            raise PersistenceFailure(f"Duplicate repair for series {definition.name!r} failed: {e}") from e

        if report.remaining_duplicate_groups:
            logger.error(
                "Duplicate numbers remain after repair",
                series=definition.name,
                remaining=report.remaining_duplicate_groups,
            )
        else:
            logger.info("Duplicate repair complete", series=definition.name, renumbered=len(report.renumbered))
        return report

    async def _assign_number(self, definition: SeriesDefinition, record_id: str, number: str) -> None:
        model = definition.model
        await self.session.execute(
            update(model)
            .where(model.id == record_id)  # type: ignore[arg-type]
            .values({definition.number_attr: number, "updated_at": utc_now()})
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
