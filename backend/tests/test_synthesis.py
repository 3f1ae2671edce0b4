from decimal import Decimal

import pytest

from saft_admin.services.reconciliation import CatalogItem, synthesize_line_items

COTTON = CatalogItem(id=1, name="Cotton T-Shirt", unit_price=Decimal("25.99"))
JEANS = CatalogItem(id=2, name="Denim Jeans", unit_price=Decimal("45.99"))
CATALOG = [COTTON, JEANS]


def lines(synthesis):
    return [(item.catalog_item.name, item.quantity) for item in synthesis.items]


def test_single_item_exact_fit():
    synthesis = synthesize_line_items(Decimal("519.80"), CATALOG)

    assert synthesis.exact
    assert lines(synthesis) == [("Cotton T-Shirt", 20)]
    assert synthesis.total == Decimal("519.80")


def test_two_item_exact_fit_prefers_largest_first_quantity():
    synthesis = synthesize_line_items(Decimal("189.95"), CATALOG)

    assert synthesis.exact
    assert lines(synthesis) == [("Cotton T-Shirt", 2), ("Denim Jeans", 3)]
    assert synthesis.total == Decimal("189.95")


def test_earlier_catalog_items_win_ties():
    synthesis = synthesize_line_items(Decimal("45.99"), CATALOG)

    assert lines(synthesis) == [("Denim Jeans", 1)]


def test_falls_back_to_rounded_quantity_of_first_item():
    synthesis = synthesize_line_items(Decimal("100.00"), CATALOG)

    assert not synthesis.exact
    assert lines(synthesis) == [("Cotton T-Shirt", 4)]
    assert synthesis.total == Decimal("103.96")


def test_fallback_quantity_is_at_least_one():
    synthesis = synthesize_line_items(Decimal("5.00"), CATALOG)

    assert not synthesis.exact
    assert lines(synthesis) == [("Cotton T-Shirt", 1)]


def test_tolerance_accepts_one_cent_residual():
    synthesis = synthesize_line_items(Decimal("519.81"), CATALOG)

    assert synthesis.exact
    assert lines(synthesis) == [("Cotton T-Shirt", 20)]


def test_max_items_limits_combination_size():
    synthesis = synthesize_line_items(Decimal("189.95"), CATALOG, max_items=1)

    assert not synthesis.exact


def test_exhausted_search_budget_falls_back():
    synthesis = synthesize_line_items(Decimal("189.95"), CATALOG, search_budget=2)

    assert not synthesis.exact
    assert lines(synthesis) == [("Cotton T-Shirt", 7)]


def test_result_is_deterministic():
    first = synthesize_line_items(Decimal("777.77"), CATALOG)
    second = synthesize_line_items(Decimal("777.77"), CATALOG)

    assert first == second


def test_no_usable_catalog_items():
    assert synthesize_line_items(Decimal("10.00"), []) is None
    free = CatalogItem(id=3, name="Sticker", unit_price=Decimal("0.00"))
    assert synthesize_line_items(Decimal("10.00"), [free]) is None


def test_zero_priced_items_are_skipped():
    free = CatalogItem(id=3, name="Sticker", unit_price=Decimal("0.00"))
    synthesis = synthesize_line_items(Decimal("519.80"), [free, *CATALOG])

    assert lines(synthesis) == [("Cotton T-Shirt", 20)]


def test_non_positive_total_is_rejected():
    with pytest.raises(ValueError):
        synthesize_line_items(Decimal("0.00"), CATALOG)
