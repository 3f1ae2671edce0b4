"""Invoice issuing service."""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select
from ulid import ULID

from saft_admin.config import settings
from saft_admin.models.defaults import utc_now
from saft_admin.models.enums import AggregateKind, InvoiceStatus
from saft_admin.models.invoice import Invoice, InvoiceItem
from saft_admin.models.order import Order, OrderItem
from saft_admin.services.exceptions import PersistenceFailure, ValidationError
from saft_admin.services.invoices.exceptions import InvoiceNotFound
from saft_admin.services.numbering import INVOICES, SequenceAllocator
from saft_admin.services.orders.exceptions import OrderNotFound
from saft_admin.services.reconciliation import LineItemReconciler

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


class InvoiceService:
    """Issues invoices with allocated numbers and reconciled line items."""

    def __init__(
        self,
        session: AsyncSession,
        allocator: SequenceAllocator | None = None,
        reconciler: LineItemReconciler | None = None,
    ):
        self.session = session
        self.allocator = allocator or SequenceAllocator(session)
        self.reconciler = reconciler or LineItemReconciler(session)

    async def get_invoice(self, invoice_number: str) -> Invoice:
        """Get invoice by number with its line items loaded."""
        statement = (
            select(Invoice)
            .options(selectinload(Invoice.line_items))  # type: ignore[arg-type]
            .where(Invoice.invoice_number == invoice_number)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        invoice = result.scalars().first()
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_number} not found")
        return invoice

    async def create_invoice(
        self,
        amount: Decimal,
        order_id: str | None = None,
        due_date: date | None = None,
    ) -> Invoice:
        """Issue an invoice for ``amount`` with line items.

        An invoice for an order whose line items add up to ``amount`` gets a
        copy of those items. Otherwise its line items are synthesized from the
        catalog by the reconciler.

        Tax is stored at ``settings.invoice_tax_rate`` of the amount; the due
        date defaults to ``settings.invoice_due_days`` from today.

        Raises:
            ValidationError: negative amount.
            OrderNotFound: ``order_id`` given but no such order.
            AllocationExhausted: number allocation lost too many races.
            PersistenceFailure: the invoice could not be stored.
        """
        if amount < 0:
            raise ValidationError(f"Invoice amount must not be negative ({amount})")
        total_amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)

        order_items: list[OrderItem] = []
        if order_id is not None:
            order_items = await self._load_order_items(order_id)
        await self.session.commit()

        invoice_number = await self.allocator.allocate(INVOICES)
        invoice = Invoice(
            invoice_number=invoice_number,
            order_id=order_id,
            total_amount=total_amount,
            tax_amount=(total_amount * settings.invoice_tax_rate).quantize(CENT, rounding=ROUND_HALF_UP),
            status=InvoiceStatus.UNPAID,
            due_date=due_date or utc_now().date() + timedelta(days=settings.invoice_due_days),
        )
        copied = self._copy_order_items(invoice, order_items)
        try:
            self.session.add(invoice)
            self.session.add_all(copied)
            await self.session.commit()
        except DBAPIError as e:
            await self.session.rollback()
            raise PersistenceFailure(f"Storing invoice {invoice_number} failed: {e}") from e

        logger.info(
            "Created invoice",
            invoice_id=invoice.id,
            invoice_number=invoice_number,
            order_id=order_id,
            total_amount=str(total_amount),
            items_from_order=len(copied),
        )

        if not copied:
            await self.reconciler.reconcile(invoice.id, AggregateKind.INVOICE)
        return await self.get_invoice(invoice_number)

    async def _load_order_items(self, order_id: str) -> list[OrderItem]:
        try:
            ULID.from_str(order_id)
        except ValueError:
            raise OrderNotFound(f"Order {order_id} not found") from None
        statement = (
            select(Order)
            .options(selectinload(Order.line_items))  # type: ignore[arg-type]
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = (await self.session.execute(statement)).scalars().first()
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        return list(order.line_items)

    @staticmethod
    def _copy_order_items(invoice: Invoice, order_items: list[OrderItem]) -> list[InvoiceItem]:
        """Invoice rows mirroring the order's items, or none if they do not add up to the invoice."""
        if not order_items:
            return []
        items_total = sum((item.total_price for item in order_items), Decimal("0.00"))
        if abs(items_total - invoice.total_amount) > settings.amount_tolerance:
            logger.info(
                "Order line items do not match invoice amount, synthesizing",
                order_id=invoice.order_id,
                items_total=str(items_total),
                total_amount=str(invoice.total_amount),
            )
            return []
        return [
            InvoiceItem(
                invoice_id=invoice.id,
                position=position,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for position, item in enumerate(order_items, start=1)
        ]
