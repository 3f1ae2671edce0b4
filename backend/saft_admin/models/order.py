"""Order and OrderItem database models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from saft_admin.models.defaults import new_ulid, utc_now
from saft_admin.models.enums import ORDER_STATUS_SA_ENUM, OrderStatus
from saft_admin.models.line_item import LineItemBase
from saft_admin.models.types import ULIDType


class Order(SQLModel, table=True):
    """Customer order."""

    __tablename__ = "orders"

    # ULID stored as UUID
    id: str = Field(
        default_factory=new_ulid,
        max_length=26,
        sa_column=Column(ULIDType, primary_key=True),
    )

    # Display number: "SAFT-00001", assigned by SequenceAllocator
    order_number: str = Field(unique=True, index=True)

    customer_name: str | None = None
    status: OrderStatus = Field(
        default=OrderStatus.PENDING,
        sa_column=Column(ORDER_STATUS_SA_ENUM, nullable=False),
    )
    total_amount: Decimal = Field(default=Decimal("0.00"), max_digits=12, decimal_places=2)
    notes: str = ""
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))

    # Relationships
    line_items: list["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "OrderItem.position"},
    )


# Constraint for OrderItem position uniqueness per order
ORDER_ITEM_POSITION_CONSTRAINT = UniqueConstraint("order_id", "position", name="uq_order_item_order_position")


class OrderItem(LineItemBase, table=True):
    """Line item within an order."""

    __tablename__ = "order_items"
    __table_args__ = (ORDER_ITEM_POSITION_CONSTRAINT,)

    id: int | None = Field(default=None, primary_key=True)
    order_id: str = Field(
        sa_column=Column(ULIDType, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False),
    )

    # Relationships
    order: Order = Relationship(back_populates="line_items")
