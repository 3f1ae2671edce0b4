"""Document numbering: formatting, allocation and duplicate repair."""

from saft_admin.services.numbering.allocator import SequenceAllocator
from saft_admin.services.numbering.exceptions import (
    AllocationExhausted,
    SeriesCounterCorrupted,
    SeriesNotConfigured,
)
from saft_admin.services.numbering.repair import DuplicateNumberRepair, RepairReport
from saft_admin.services.numbering.series import INVOICES, ORDERS, SeriesDefinition

__all__ = [
    "INVOICES",
    "ORDERS",
    "AllocationExhausted",
    "DuplicateNumberRepair",
    "RepairReport",
    "SequenceAllocator",
    "SeriesCounterCorrupted",
    "SeriesDefinition",
    "SeriesNotConfigured",
]
