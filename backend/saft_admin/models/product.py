"""Product catalog model."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from saft_admin.models.defaults import utc_now


class Product(SQLModel, table=True):
    """Catalog product. Integer ids follow insertion order."""

    __tablename__ = "products"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    sku: str | None = Field(default=None, unique=True)
    unit_price: Decimal = Field(max_digits=12, decimal_places=2)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
