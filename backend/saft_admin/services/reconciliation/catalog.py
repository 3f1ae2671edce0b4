"""Read-only catalog access for line-item synthesis and order pricing."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from saft_admin.models.product import Product


@dataclass(frozen=True)
class CatalogItem:
    """Price snapshot of an active product."""

    id: int
    name: str
    unit_price: Decimal

    @classmethod
    def from_model(cls, product: Product) -> "CatalogItem":
        assert product.id is not None
        return cls(id=product.id, name=product.name, unit_price=product.unit_price)


@runtime_checkable
class CatalogLookup(Protocol):
    """Source of catalog items in canonical order.

    The order must be stable between calls against unchanged data; line-item
    synthesis relies on it for deterministic results.
    """

    async def list_items(self) -> list[CatalogItem]: ...


class ProductCatalog:
    """Active products in insertion order (ascending id)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_items(self) -> list[CatalogItem]:
        statement = select(Product).where(Product.is_active == True).order_by(Product.id)  # type: ignore[arg-type]  # noqa: E712
        result = await self.session.execute(statement)
        return [CatalogItem.from_model(product) for product in result.scalars().all()]

    async def get_item(self, product_id: int) -> CatalogItem | None:
        """Active product by id, None if missing or inactive."""
        product = await self.session.get(Product, product_id)
        if product is None or not product.is_active:
            return None
        return CatalogItem.from_model(product)
