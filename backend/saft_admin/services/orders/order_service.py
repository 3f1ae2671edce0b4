"""Order management service.

Orders get their number from SequenceAllocator before anything is written, so
a failed insert only leaves a gap in the series, never a reused number.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from saft_admin.models.enums import AggregateKind, OrderStatus
from saft_admin.models.order import Order, OrderItem
from saft_admin.services.exceptions import PersistenceFailure, ValidationError
from saft_admin.services.numbering import ORDERS, SequenceAllocator
from saft_admin.services.orders.exceptions import OrderNotFound, ProductNotFound
from saft_admin.services.reconciliation import LineItemReconciler, ProductCatalog

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class OrderItemInput:
    """Requested product and quantity; the price comes from the catalog."""

    product_id: int
    quantity: int


class OrderService:
    """Service for order management operations."""

    def __init__(
        self,
        session: AsyncSession,
        allocator: SequenceAllocator | None = None,
        catalog: ProductCatalog | None = None,
        reconciler: LineItemReconciler | None = None,
    ):
        self.session = session
        self.allocator = allocator or SequenceAllocator(session)
        self.catalog = catalog or ProductCatalog(session)
        self.reconciler = reconciler or LineItemReconciler(session, self.catalog)

    async def get_order(self, order_number: str) -> Order:
        """Get order by number with its line items loaded."""
        statement = (
            select(Order)
            .options(selectinload(Order.line_items))  # type: ignore[arg-type]
            .where(Order.order_number == order_number)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        order = result.scalars().first()
        if not order:
            raise OrderNotFound(f"Order {order_number} not found")
        return order

    async def create_order(
        self,
        customer_name: str | None,
        items: list[OrderItemInput] | None = None,
        total_amount: Decimal | None = None,
        notes: str = "",
    ) -> Order:
        """Create an order with a freshly allocated number.

        With ``items`` the total is computed from catalog prices. Without them
        ``total_amount`` is required and line items are synthesized by the
        reconciler once the order is stored.

        Raises:
            ValidationError: no items and no total, bad quantity or total.
            ProductNotFound: an item references an unknown or inactive product.
            AllocationExhausted: number allocation lost too many races.
            PersistenceFailure: the order could not be stored.
        """
        priced = await self._price_items(items or [])
        if priced:
            computed = sum((item.total_price for item in priced), Decimal("0.00"))
            if total_amount is not None and total_amount != computed:
                raise ValidationError(f"total_amount {total_amount} does not match line items ({computed})")
            total_amount = computed
        elif total_amount is None:
            raise ValidationError("Either items or total_amount is required")
        elif total_amount < 0:
            raise ValidationError(f"total_amount must not be negative ({total_amount})")

        # End the read transaction; the allocator works on a clean session
        await self.session.commit()
        order_number = await self.allocator.allocate(ORDERS)

        order = Order(
            order_number=order_number,
            customer_name=customer_name,
            status=OrderStatus.PENDING,
            total_amount=total_amount.quantize(CENT, rounding=ROUND_HALF_UP),
            notes=notes,
        )
        try:
            self.session.add(order)
            for position, item in enumerate(priced, start=1):
                item.order_id = order.id
                item.position = position
                self.session.add(item)
            await self.session.commit()
        except DBAPIError as e:
            await self.session.rollback()
            raise PersistenceFailure(f"Storing order {order_number} failed: {e}") from e

        logger.info(
            "Created order",
            order_id=order.id,
            order_number=order_number,
            total_amount=str(order.total_amount),
            items=len(priced),
        )

        if not priced:
            await self.reconciler.reconcile(order.id, AggregateKind.ORDER)

        return await self.get_order(order_number)

    async def _price_items(self, items: list[OrderItemInput]) -> list[OrderItem]:
        """Line items priced from the catalog, not yet attached to an order."""
        priced = []
        for item in items:
            if item.quantity < 1:
                raise ValidationError(f"Quantity must be at least 1 (product {item.product_id})")
            catalog_item = await self.catalog.get_item(item.product_id)
            if catalog_item is None:
                raise ProductNotFound(item.product_id)
            priced.append(
                OrderItem(
                    position=0,
                    product_id=catalog_item.id,
                    quantity=item.quantity,
                    unit_price=catalog_item.unit_price,
                    total_price=(catalog_item.unit_price * item.quantity).quantize(CENT, rounding=ROUND_HALF_UP),
                )
            )
        return priced
