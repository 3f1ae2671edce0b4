"""Enum definitions for database models and service results."""

from enum import StrEnum

from sqlalchemy import Enum


class OrderStatus(StrEnum):
    """Status of an order."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InvoiceStatus(StrEnum):
    """Payment status of an invoice."""

    UNPAID = "unpaid"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"


class AggregateKind(StrEnum):
    """Records whose total must be explained by their line items."""

    ORDER = "order"
    INVOICE = "invoice"


class ReconciliationStatus(StrEnum):
    """Outcome of reconciling one aggregate's line items against its total."""

    ALREADY_CONSISTENT = "already_consistent"
    REPAIRED_EXACT = "repaired_exact"
    REPAIRED_APPROXIMATE = "repaired_approximate"
    NO_CATALOG_AVAILABLE = "no_catalog_available"
    AMOUNT_MISMATCH = "amount_mismatch"


# Stored as VARCHAR; values rather than member names end up in the column
ORDER_STATUS_SA_ENUM = Enum(
    OrderStatus,
    name="orderstatus",
    native_enum=False,
    length=32,
    values_callable=lambda e: [member.value for member in e],
)

INVOICE_STATUS_SA_ENUM = Enum(
    InvoiceStatus,
    name="invoicestatus",
    native_enum=False,
    length=32,
    values_callable=lambda e: [member.value for member in e],
)
