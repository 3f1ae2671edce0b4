"""Order domain exceptions."""

from saft_admin.services.exceptions import NotFoundError, ValidationError


class OrderNotFound(NotFoundError):
    """Order not found."""

    pass


class ProductNotFound(ValidationError):
    """Line item references a product that is missing or inactive."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} does not exist or is inactive")
