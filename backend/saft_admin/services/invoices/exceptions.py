"""Invoice domain exceptions."""

from saft_admin.services.exceptions import NotFoundError


class InvoiceNotFound(NotFoundError):
    """Invoice not found."""

    pass
