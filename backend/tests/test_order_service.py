from decimal import Decimal

import pytest

from saft_admin.services.exceptions import ValidationError
from saft_admin.services.orders import OrderItemInput, OrderNotFound, OrderService, ProductNotFound


async def test_create_order_with_items(session, catalog_products):
    cotton, jeans = catalog_products

    order = await OrderService(session).create_order(
        "Asha Verma",
        items=[OrderItemInput(cotton.id, 2), OrderItemInput(jeans.id, 3)],
    )

    assert order.order_number == "SAFT-00001"
    assert order.total_amount == Decimal("189.95")
    assert [(i.position, i.product_id, i.quantity, i.total_price) for i in order.line_items] == [
        (1, cotton.id, 2, Decimal("51.98")),
        (2, jeans.id, 3, Decimal("137.97")),
    ]


async def test_create_order_from_total_synthesizes_items(session, catalog_products):
    order = await OrderService(session).create_order("Walk-in", total_amount=Decimal("519.80"), notes="backfilled")

    assert order.order_number == "SAFT-00001"
    assert order.notes == "backfilled"
    assert [(i.product_id, i.quantity) for i in order.line_items] == [(catalog_products[0].id, 20)]


async def test_orders_get_consecutive_numbers(session, catalog_products):
    service = OrderService(session)

    first = await service.create_order("A", total_amount=Decimal("25.99"))
    second = await service.create_order("B", total_amount=Decimal("45.99"))

    assert (first.order_number, second.order_number) == ("SAFT-00001", "SAFT-00002")
    assert (await service.get_order("SAFT-00002")).customer_name == "B"


async def test_unknown_product_is_rejected_before_allocation(session, catalog_products):
    service = OrderService(session)

    with pytest.raises(ProductNotFound) as exc_info:
        await service.create_order("A", items=[OrderItemInput(product_id=999, quantity=1)])
    assert exc_info.value.product_id == 999

    order = await service.create_order("A", total_amount=Decimal("25.99"))
    assert order.order_number == "SAFT-00001"


async def test_inactive_product_is_rejected(session, catalog_products):
    cotton = catalog_products[0]
    cotton.is_active = False
    await session.commit()

    with pytest.raises(ProductNotFound):
        await OrderService(session).create_order("A", items=[OrderItemInput(cotton.id, 1)])


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"total_amount": Decimal("-1.00")},
        {"items": [OrderItemInput(product_id=1, quantity=0)]},
        {"items": [OrderItemInput(product_id=1, quantity=1)], "total_amount": Decimal("30.00")},
    ],
)
async def test_invalid_orders(session, catalog_products, kwargs):
    with pytest.raises(ValidationError):
        await OrderService(session).create_order("A", **kwargs)


async def test_get_unknown_order(session):
    with pytest.raises(OrderNotFound):
        await OrderService(session).get_order("SAFT-99999")
