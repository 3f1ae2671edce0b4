"""Invoice and InvoiceItem database models."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from saft_admin.models.defaults import new_ulid, utc_now
from saft_admin.models.enums import INVOICE_STATUS_SA_ENUM, InvoiceStatus
from saft_admin.models.line_item import LineItemBase
from saft_admin.models.types import ULIDType


class Invoice(SQLModel, table=True):
    """Invoice, optionally issued against an order."""

    __tablename__ = "invoices"

    id: str = Field(
        default_factory=new_ulid,
        max_length=26,
        sa_column=Column(ULIDType, primary_key=True),
    )

    # Display number: "INV-00001", assigned by SequenceAllocator
    invoice_number: str = Field(unique=True, index=True)

    order_id: str | None = Field(
        default=None,
        sa_column=Column(ULIDType, ForeignKey("orders.id"), index=True, nullable=True),
    )
    total_amount: Decimal = Field(max_digits=12, decimal_places=2)
    tax_amount: Decimal = Field(default=Decimal("0.00"), max_digits=12, decimal_places=2)
    status: InvoiceStatus = Field(
        default=InvoiceStatus.UNPAID,
        sa_column=Column(INVOICE_STATUS_SA_ENUM, nullable=False),
    )
    due_date: date
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))

    # Relationships
    line_items: list["InvoiceItem"] = Relationship(
        back_populates="invoice",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "InvoiceItem.position"},
    )


# Constraint for InvoiceItem position uniqueness per invoice
INVOICE_ITEM_POSITION_CONSTRAINT = UniqueConstraint(
    "invoice_id", "position", name="uq_invoice_item_invoice_position"
)


class InvoiceItem(LineItemBase, table=True):
    """Line item within an invoice."""

    __tablename__ = "invoice_items"
    __table_args__ = (INVOICE_ITEM_POSITION_CONSTRAINT,)

    id: int | None = Field(default=None, primary_key=True)
    invoice_id: str = Field(
        sa_column=Column(ULIDType, ForeignKey("invoices.id", ondelete="CASCADE"), index=True, nullable=False),
    )

    # Relationships
    invoice: Invoice = Relationship(back_populates="line_items")
