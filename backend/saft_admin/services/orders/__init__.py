"""Order creation and lookup."""

from saft_admin.services.orders.exceptions import OrderNotFound, ProductNotFound
from saft_admin.services.orders.order_service import OrderItemInput, OrderService

__all__ = ["OrderItemInput", "OrderNotFound", "OrderService", "ProductNotFound"]
