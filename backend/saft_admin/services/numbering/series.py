"""Number series definitions.

Each series couples a prefix and pad width with the table column that holds
the numbers it issues, so the allocator can seed its counter from existing
data and refuse candidates that a record already carries.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from saft_admin.config import settings
from saft_admin.models.invoice import Invoice
from saft_admin.models.order import Order
from saft_admin.services.numbering.exceptions import SeriesNotConfigured

ORDERS = "orders"
INVOICES = "invoices"


@dataclass(frozen=True)
class SeriesDefinition:
    """Prefix, padding and owning column of one number series."""

    name: str
    prefix: str
    pad_width: int
    model: type[Order] | type[Invoice]
    number_attr: str

    @property
    def number_column(self) -> Any:  # InstrumentedAttribute at runtime
        return getattr(self.model, self.number_attr)


def default_series() -> dict[str, SeriesDefinition]:
    """Series known to the application, built from settings."""
    return {
        ORDERS: SeriesDefinition(
            name=ORDERS,
            prefix=settings.order_number_prefix,
            pad_width=settings.number_pad_width,
            model=Order,
            number_attr="order_number",
        ),
        INVOICES: SeriesDefinition(
            name=INVOICES,
            prefix=settings.invoice_number_prefix,
            pad_width=settings.number_pad_width,
            model=Invoice,
            number_attr="invoice_number",
        ),
    }


def get_series(series_name: str, registry: Mapping[str, SeriesDefinition] | None = None) -> SeriesDefinition:
    """Look up a series definition, raising SeriesNotConfigured for unknown names."""
    definitions = registry if registry is not None else default_series()
    try:
        return definitions[series_name]
    except KeyError:
        raise SeriesNotConfigured(series_name) from None
