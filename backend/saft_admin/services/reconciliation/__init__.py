"""Line-item reconciliation: verify or synthesize items explaining a total."""

from saft_admin.services.reconciliation.catalog import CatalogItem, CatalogLookup, ProductCatalog
from saft_admin.services.reconciliation.exceptions import AggregateNotFound
from saft_admin.services.reconciliation.reconciler import (
    LineItemReconciler,
    ReconciliationResult,
    WrittenLineItem,
)
from saft_admin.services.reconciliation.synthesis import Synthesis, synthesize_line_items

__all__ = [
    "AggregateNotFound",
    "CatalogItem",
    "CatalogLookup",
    "LineItemReconciler",
    "ProductCatalog",
    "ReconciliationResult",
    "Synthesis",
    "WrittenLineItem",
    "synthesize_line_items",
]
