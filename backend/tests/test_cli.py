import asyncio
from decimal import Decimal

import pytest
from click.testing import CliRunner
from sqlmodel import SQLModel

import saft_admin.cli
import saft_admin.db.session
from saft_admin.cli import EXIT_RETRYABLE, cli
from saft_admin.db import create_session_maker
from saft_admin.models import Product
from saft_admin.services.numbering import AllocationExhausted, SequenceAllocator


def output_lines(result, prefix):
    """Command output lines starting with ``prefix``; log lines are interleaved on stdout."""
    return [line for line in result.output.splitlines() if line.startswith(prefix)]


@pytest.fixture
def runner(tmp_path, monkeypatch, engine_factory):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"

    async def prepare() -> None:
        engine = engine_factory(database_url)
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        async with create_session_maker(engine)() as session:
            session.add(Product(name="Cotton T-Shirt", unit_price=Decimal("25.99")))
            session.add(Product(name="Denim Jeans", unit_price=Decimal("45.99")))
            await session.commit()
        await engine.dispose()

    asyncio.run(prepare())
    monkeypatch.setattr(saft_admin.db.session, "create_engine", lambda url=None: engine_factory(url or database_url))
    monkeypatch.setattr(saft_admin.cli, "setup_logging", lambda: None)
    return CliRunner()


def test_allocate(runner):
    result = runner.invoke(cli, ["allocate", "orders", "--count", "3"])

    assert result.exit_code == 0, result.output
    assert output_lines(result, "SAFT-") == ["SAFT-00001", "SAFT-00002", "SAFT-00003"]


def test_allocate_unknown_series(runner):
    result = runner.invoke(cli, ["allocate", "receipts"])

    assert result.exit_code == 2


def test_allocation_exhausted_exits_with_retryable_code(runner, monkeypatch):
    async def exhausted(self, series_name):
        raise AllocationExhausted(series_name, 10)

    monkeypatch.setattr(SequenceAllocator, "allocate", exhausted)

    result = runner.invoke(cli, ["allocate", "invoices"])

    assert result.exit_code == EXIT_RETRYABLE


def test_create_order_and_reconcile(runner):
    created = runner.invoke(cli, ["create-order", "--customer", "Asha", "--total", "519.80"])
    assert created.exit_code == 0, created.output
    [summary] = output_lines(created, "SAFT-00001 (")
    assert summary.endswith("total 519.80, 1 item(s)")

    order_id = summary.split("(")[1].split(")")[0]
    reconciled = runner.invoke(cli, ["reconcile", order_id, "--kind", "order"])
    assert reconciled.exit_code == 0, reconciled.output
    assert output_lines(reconciled, "SAFT-00001: already_consistent")


def test_create_invoice(runner):
    result = runner.invoke(cli, ["create-invoice", "--amount", "189.95"])

    assert result.exit_code == 0, result.output
    [summary] = output_lines(result, "INV-00001 (")
    assert "tax 34.19" in summary


def test_create_order_rejects_bad_amount(runner):
    result = runner.invoke(cli, ["create-order", "--total", "lots"])

    assert result.exit_code == 2


def test_reconcile_all(runner):
    runner.invoke(cli, ["create-order", "--total", "100.00"])

    result = runner.invoke(cli, ["reconcile-all", "--kind", "order"])

    assert result.exit_code == 0, result.output
    assert output_lines(result, "SAFT-00001: amount_mismatch (total 100.00, items 103.96, difference 3.96)")


def test_reconcile_unknown_aggregate(runner):
    result = runner.invoke(cli, ["reconcile", "01JAAAAAAAAAAAAAAAAAAAAAAA"])

    assert result.exit_code == 1
    assert "No order or invoice with id" in result.output


def test_repair_duplicates_on_clean_data(runner):
    runner.invoke(cli, ["allocate", "orders"])

    result = runner.invoke(cli, ["repair-duplicates"])

    assert result.exit_code == 0, result.output
    assert output_lines(result, "invoices: 0 duplicate group(s)")
    assert output_lines(result, "orders: 0 duplicate group(s)")
