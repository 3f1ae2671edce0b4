"""Deterministic synthesis of line items explaining an aggregate total.

Given a total and the catalog in canonical order, find the fewest distinct
catalog items and positive quantities whose prices add up to the total:

1. Try subsets of size 1, 2, ... ``max_items`` in ``itertools.combinations``
   order, so earlier catalog items are preferred.
2. Within a subset, give each item the largest quantity that still leaves at
   least one unit for every later item, backtracking to smaller quantities
   until the last item closes the gap within the tolerance.
3. Without an exact fit (or once the search budget is spent), use one line of
   the first catalog item with ``quantity = round_half_up(total / price)``.

All arithmetic runs on integer cents.
"""

import itertools
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from saft_admin.services.reconciliation.catalog import CatalogItem

CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    return int((amount / CENT).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class SynthesizedItem:
    """Catalog item and quantity proposed for one line."""

    catalog_item: CatalogItem
    quantity: int

    @property
    def unit_price(self) -> Decimal:
        return self.catalog_item.unit_price

    @property
    def total_price(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Synthesis:
    """Proposed line items and whether they reconstruct the total."""

    items: tuple[SynthesizedItem, ...]
    exact: bool

    @property
    def total(self) -> Decimal:
        return sum((item.total_price for item in self.items), Decimal("0.00"))


class _SearchBudget:
    """Caps the number of quantity combinations examined."""

    def __init__(self, steps: int):
        self.remaining = steps

    def spend(self) -> bool:
        self.remaining -= 1
        return self.remaining >= 0

    @property
    def exhausted(self) -> bool:
        return self.remaining < 0


def synthesize_line_items(
    total: Decimal,
    catalog: Sequence[CatalogItem],
    *,
    tolerance: Decimal = CENT,
    max_items: int = 3,
    search_budget: int = 100_000,
) -> Synthesis | None:
    """Propose line items for ``total``. Returns None when no catalog item is usable.

    Items priced at less than one cent are ignored.
    """
    if total <= 0:
        raise ValueError(f"Cannot synthesize line items for a non-positive total ({total})")

    usable = [item for item in catalog if to_cents(item.unit_price) > 0]
    if not usable:
        return None

    total_cents = to_cents(total)
    tolerance_cents = to_cents(tolerance)
    budget = _SearchBudget(search_budget)

    for size in range(1, min(max_items, len(usable)) + 1):
        for combination in itertools.combinations(usable, size):
            prices = [to_cents(item.unit_price) for item in combination]
            quantities = _fill(total_cents, prices, tolerance_cents, budget)
            if quantities is not None:
                items = tuple(SynthesizedItem(item, quantity) for item, quantity in zip(combination, quantities))
                return Synthesis(items=items, exact=True)
            if budget.exhausted:
                return _approximate(total, usable[0])

    return _approximate(total, usable[0])


def _fill(remaining: int, prices: list[int], tolerance: int, budget: _SearchBudget) -> list[int] | None:
    """Largest-first quantities for ``prices`` adding up to ``remaining`` ± ``tolerance``."""
    price, rest = prices[0], prices[1:]

    if not rest:
        if not budget.spend():
            return None
        floor = remaining // price
        for quantity in (floor, floor + 1):
            if quantity >= 1 and abs(remaining - quantity * price) <= tolerance:
                return [quantity]
        return None

    reserve = sum(rest)  # every later item keeps at least one unit
    for quantity in range((remaining - reserve) // price, 0, -1):
        if not budget.spend():
            return None
        tail = _fill(remaining - quantity * price, rest, tolerance, budget)
        if tail is not None:
            return [quantity, *tail]
    return None


def _approximate(total: Decimal, item: CatalogItem) -> Synthesis:
    quantity = int((total / item.unit_price).to_integral_value(rounding=ROUND_HALF_UP))
    return Synthesis(items=(SynthesizedItem(item, max(quantity, 1)),), exact=False)
