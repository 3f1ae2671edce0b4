"""Database models."""

from sqlmodel import SQLModel

from saft_admin.models.enums import AggregateKind, InvoiceStatus, OrderStatus, ReconciliationStatus
from saft_admin.models.invoice import Invoice, InvoiceItem
from saft_admin.models.order import Order, OrderItem
from saft_admin.models.product import Product
from saft_admin.models.series_counter import SeriesCounter

__all__ = [
    "SQLModel",
    "AggregateKind",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "ReconciliationStatus",
    "SeriesCounter",
]
