"""Invoice issuing and lookup."""

from saft_admin.services.invoices.exceptions import InvoiceNotFound
from saft_admin.services.invoices.invoice_service import InvoiceService

__all__ = ["InvoiceNotFound", "InvoiceService"]
