"""Line-item reconciliation for orders and invoices.

An aggregate (order or invoice) is settled once it has line items whose
``total_price`` values add up to its ``total_amount`` within the currency
tolerance. The reconciler verifies settled aggregates and, for aggregates
without any line items, writes a minimal synthesized set in one batch.
Existing line items are never modified.
"""

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from ulid import ULID

from saft_admin.config import settings
from saft_admin.models.enums import AggregateKind, ReconciliationStatus
from saft_admin.models.invoice import Invoice, InvoiceItem
from saft_admin.models.order import Order, OrderItem
from saft_admin.services.exceptions import PersistenceFailure
from saft_admin.services.reconciliation.catalog import CatalogItem, CatalogLookup, ProductCatalog
from saft_admin.services.reconciliation.exceptions import AggregateNotFound
from saft_admin.services.reconciliation.synthesis import Synthesis, SynthesizedItem, synthesize_line_items

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AggregateType:
    """Table layout of one aggregate kind and its line items."""

    kind: AggregateKind
    model: type[Order] | type[Invoice]
    item_model: type[OrderItem] | type[InvoiceItem]
    number_attr: str
    owner_attr: str  # FK column on the item table


AGGREGATE_TYPES: dict[AggregateKind, AggregateType] = {
    AggregateKind.ORDER: AggregateType(
        kind=AggregateKind.ORDER,
        model=Order,
        item_model=OrderItem,
        number_attr="order_number",
        owner_attr="order_id",
    ),
    AggregateKind.INVOICE: AggregateType(
        kind=AggregateKind.INVOICE,
        model=Invoice,
        item_model=InvoiceItem,
        number_attr="invoice_number",
        owner_attr="invoice_id",
    ),
}


@dataclass(frozen=True)
class WrittenLineItem:
    """Line item persisted by a reconciliation."""

    position: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


@dataclass
class ReconciliationResult:
    """Outcome for one aggregate."""

    kind: AggregateKind
    aggregate_id: str
    number: str
    status: ReconciliationStatus
    total_amount: Decimal
    items_total: Decimal
    items_written: list[WrittenLineItem] = field(default_factory=list)

    @property
    def difference(self) -> Decimal:
        """Line items total minus the aggregate total."""
        return self.items_total - self.total_amount

    @property
    def changed(self) -> bool:
        return bool(self.items_written)


class LineItemReconciler:
    """Verifies or synthesizes line items so they explain each aggregate's total.

    Usage:
        reconciler = LineItemReconciler(session)
        result = await reconciler.reconcile(order.id)
        results = await reconciler.reconcile_all()

    Each aggregate is handled in its own transaction with the aggregate row
    locked (``SELECT ... FOR UPDATE`` where the database supports it), so two
    concurrent sweeps cannot both write items for the same aggregate.
    """

    def __init__(
        self,
        session: AsyncSession,
        catalog: CatalogLookup | None = None,
        *,
        tolerance: Decimal | None = None,
        max_items: int | None = None,
        search_budget: int | None = None,
    ):
        self.session = session
        self.catalog = catalog or ProductCatalog(session)
        self.tolerance = tolerance if tolerance is not None else settings.amount_tolerance
        self.max_items = max_items if max_items is not None else settings.reconcile_max_items
        self.search_budget = search_budget if search_budget is not None else settings.reconcile_search_budget

    async def reconcile(self, aggregate_id: str, kind: AggregateKind | None = None) -> ReconciliationResult:
        """Reconcile one order or invoice by id.

        Without ``kind`` the id is looked up among orders, then invoices.

        Raises:
            AggregateNotFound: no aggregate with that id.
            PersistenceFailure: database error; nothing was written.
        """
        try:
            ULID.from_str(aggregate_id)
        except ValueError:
            raise AggregateNotFound(aggregate_id) from None

        try:
            aggregate_type = await self._resolve_type(aggregate_id, kind)
        except DBAPIError as e:
            raise PersistenceFailure(f"Looking up aggregate {aggregate_id} failed: {e}") from e
        return await self._reconcile(aggregate_type, aggregate_id)

    async def reconcile_record(self, record: Order | Invoice) -> ReconciliationResult:
        """Reconcile an already loaded order or invoice."""
        kind = AggregateKind.ORDER if isinstance(record, Order) else AggregateKind.INVOICE
        return await self.reconcile(record.id, kind)

    async def reconcile_all(self, kind: AggregateKind | None = None) -> list[ReconciliationResult]:
        """Idempotent repair pass over every aggregate, oldest first.

        The catalog is read once per sweep so all aggregates see the same prices.
        """
        kinds = [kind] if kind is not None else list(AGGREGATE_TYPES)
        results: list[ReconciliationResult] = []

        try:
            catalog_items = await self.catalog.list_items()
        except DBAPIError as e:
            raise PersistenceFailure(f"Reading the catalog failed: {e}") from e

        for aggregate_kind in kinds:
            aggregate_type = AGGREGATE_TYPES[aggregate_kind]
            model = aggregate_type.model
            try:
                statement = select(model.id).order_by(model.created_at, model.id)  # type: ignore[arg-type]
                aggregate_ids = list((await self.session.execute(statement)).scalars().all())
                await self.session.commit()
            except DBAPIError as e:
                raise PersistenceFailure(f"Listing {aggregate_kind} records failed: {e}") from e

            for aggregate_id in aggregate_ids:
                results.append(await self._reconcile(aggregate_type, aggregate_id, catalog_items))

        summary = Counter(result.status.value for result in results)
        logger.info("Reconciliation sweep complete", aggregates=len(results), **summary)
        return results

    async def _resolve_type(self, aggregate_id: str, kind: AggregateKind | None) -> AggregateType:
        if kind is not None:
            return AGGREGATE_TYPES[kind]
        for aggregate_type in AGGREGATE_TYPES.values():
            model = aggregate_type.model
            result = await self.session.execute(select(model.id).where(model.id == aggregate_id))
            if result.first() is not None:
                return aggregate_type
        raise AggregateNotFound(aggregate_id)

    async def _reconcile(
        self,
        aggregate_type: AggregateType,
        aggregate_id: str,
        catalog_items: list[CatalogItem] | None = None,
    ) -> ReconciliationResult:
        try:
            return await self._reconcile_locked(aggregate_type, aggregate_id, catalog_items)
        except DBAPIError as e:
            await self.session.rollback()
            raise PersistenceFailure(f"Reconciling {aggregate_type.kind} {aggregate_id} failed: {e}") from e

    async def _reconcile_locked(
        self,
        aggregate_type: AggregateType,
        aggregate_id: str,
        catalog_items: list[CatalogItem] | None,
    ) -> ReconciliationResult:
        model = aggregate_type.model
        statement = (
            select(model)
            .where(model.id == aggregate_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        aggregate = (await self.session.execute(statement)).scalars().first()
        if aggregate is None:
            await self.session.rollback()
            raise AggregateNotFound(aggregate_id)

        number: str = getattr(aggregate, aggregate_type.number_attr)
        total = aggregate.total_amount
        log = logger.bind(kind=aggregate_type.kind.value, number=number, aggregate_id=aggregate_id)

        existing = await self._load_items(aggregate_type, aggregate_id)
        if existing:
            # Re-checked under the row lock: a concurrent sweep may have just written items
            items_total = sum((item.total_price for item in existing), Decimal("0.00"))
            await self.session.commit()
            if abs(items_total - total) <= self.tolerance:
                status = ReconciliationStatus.ALREADY_CONSISTENT
            else:
                status = ReconciliationStatus.AMOUNT_MISMATCH
                log.warning("Line items do not add up to the total", total=str(total), items_total=str(items_total))
            return ReconciliationResult(aggregate_type.kind, aggregate_id, number, status, total, items_total)

        if total <= 0:
            # Nothing to explain; a negative total cannot be explained by catalog items
            await self.session.commit()
            status = ReconciliationStatus.ALREADY_CONSISTENT if total == 0 else ReconciliationStatus.AMOUNT_MISMATCH
            return ReconciliationResult(aggregate_type.kind, aggregate_id, number, status, total, Decimal("0.00"))

        if catalog_items is None:
            catalog_items = await self.catalog.list_items()
        synthesis = synthesize_line_items(
            total,
            catalog_items,
            tolerance=self.tolerance,
            max_items=self.max_items,
            search_budget=self.search_budget,
        )
        if synthesis is None:
            await self.session.commit()
            log.warning("No catalog items available, aggregate left without line items", total=str(total))
            return ReconciliationResult(
                aggregate_type.kind,
                aggregate_id,
                number,
                ReconciliationStatus.NO_CATALOG_AVAILABLE,
                total,
                Decimal("0.00"),
            )

        written = await self._write_items(aggregate_type, aggregate_id, synthesis)
        await self.session.commit()

        if synthesis.exact:
            status = ReconciliationStatus.REPAIRED_EXACT
            log.info("Synthesized line items", items=len(written), total=str(total))
        else:
            status = ReconciliationStatus.REPAIRED_APPROXIMATE
            log.warning(
                "Synthesized approximate line items",
                items=len(written),
                total=str(total),
                items_total=str(synthesis.total),
            )
        return ReconciliationResult(aggregate_type.kind, aggregate_id, number, status, total, synthesis.total, written)

    async def _load_items(self, aggregate_type: AggregateType, aggregate_id: str) -> list[OrderItem] | list[InvoiceItem]:
        item_model = aggregate_type.item_model
        owner_column = getattr(item_model, aggregate_type.owner_attr)
        statement = select(item_model).where(owner_column == aggregate_id).order_by(item_model.position)  # type: ignore[arg-type]
        result = await self.session.execute(statement)
        return list(result.scalars().all())  # type: ignore[return-value]

    async def _write_items(
        self,
        aggregate_type: AggregateType,
        aggregate_id: str,
        synthesis: Synthesis,
    ) -> list[WrittenLineItem]:
        """Insert all synthesized items in one savepoint: all of them or none."""
        rows = [
            self._make_item(aggregate_type, aggregate_id, position, item)
            for position, item in enumerate(synthesis.items, start=1)
        ]
        async with self.session.begin_nested():
            self.session.add_all(rows)
            await self.session.flush()

        return [
            WrittenLineItem(
                position=position,
                product_id=item.catalog_item.id,
                product_name=item.catalog_item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for position, item in enumerate(synthesis.items, start=1)
        ]

    @staticmethod
    def _make_item(
        aggregate_type: AggregateType,
        aggregate_id: str,
        position: int,
        item: SynthesizedItem,
    ) -> Any:
        return aggregate_type.item_model(
            **{aggregate_type.owner_attr: aggregate_id},
            position=position,
            product_id=item.catalog_item.id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
        )
