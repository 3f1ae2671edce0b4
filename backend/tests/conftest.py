"""Shared fixtures: a file-backed SQLite database per test."""

from collections.abc import AsyncGenerator
from datetime import datetime
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import saft_admin.models  # noqa: F401
from saft_admin.db import create_session_maker
from saft_admin.models import Invoice, InvoiceItem, Order, OrderItem, Product


def make_engine(database_url: str) -> AsyncEngine:
    """SQLite engine with serialized write transactions and working savepoints.

    Every transaction starts with BEGIN IMMEDIATE, so concurrent sessions
    queue on the database lock instead of failing with "database is locked".
    """
    engine = create_async_engine(database_url, connect_args={"timeout": 30})

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@pytest.fixture
def database_url(tmp_path: Any) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'saft_admin.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    engine = make_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(engine)


@pytest.fixture
async def session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    async with session_maker() as session:
        yield session


@pytest.fixture
async def catalog_products(session: AsyncSession) -> list[Product]:
    """Cotton T-Shirt (25.99) and Denim Jeans (45.99), in that order."""
    products = [
        Product(name="Cotton T-Shirt", sku="TS-COT", unit_price=Decimal("25.99")),
        Product(name="Denim Jeans", sku="JN-DEN", unit_price=Decimal("45.99")),
    ]
    session.add_all(products)
    await session.commit()
    return products


def _line_items(item_model: Any, owner: dict[str, str], items: Any) -> list[Any]:
    return [
        item_model(
            **owner,
            position=position,
            product_id=product.id,
            quantity=quantity,
            unit_price=product.unit_price,
            total_price=product.unit_price * quantity,
        )
        for position, (product, quantity) in enumerate(items, start=1)
    ]


@pytest.fixture
def order_factory(session: AsyncSession) -> Any:
    """Store an order directly, bypassing number allocation.

    ``items`` is a sequence of ``(product, quantity)`` pairs.
    """

    async def create(
        order_number: str,
        total_amount: str = "0.00",
        *,
        created_at: datetime | None = None,
        items: Any = (),
    ) -> Order:
        order = Order(order_number=order_number, total_amount=Decimal(total_amount))
        if created_at is not None:
            order.created_at = created_at
        session.add(order)
        session.add_all(_line_items(OrderItem, {"order_id": order.id}, items))
        await session.commit()
        return order

    return create


@pytest.fixture
def invoice_factory(session: AsyncSession) -> Any:
    async def create(
        invoice_number: str,
        total_amount: str = "0.00",
        *,
        created_at: datetime | None = None,
        items: Any = (),
    ) -> Invoice:
        invoice = Invoice(
            invoice_number=invoice_number,
            total_amount=Decimal(total_amount),
            due_date=datetime(2026, 11, 18).date(),
        )
        if created_at is not None:
            invoice.created_at = created_at
        session.add(invoice)
        session.add_all(_line_items(InvoiceItem, {"invoice_id": invoice.id}, items))
        await session.commit()
        return invoice

    return create


@pytest.fixture
def engine_factory() -> Any:
    """``make_engine`` for tests that build their own engine."""
    return make_engine
