"""Shared line item fields for order and invoice items."""

from decimal import Decimal

from sqlmodel import Field, SQLModel


class LineItemBase(SQLModel):
    """Catalog item, quantity and price copied at write time.

    ``total_price`` is stored redundantly and always equals
    ``quantity * unit_price`` when the row is written. Concrete tables add the
    foreign key to their owning aggregate.
    """

    position: int  # 1-based, unique per aggregate
    product_id: int = Field(foreign_key="products.id", index=True)
    quantity: int
    unit_price: Decimal = Field(max_digits=12, decimal_places=2)
    total_price: Decimal = Field(max_digits=12, decimal_places=2)
