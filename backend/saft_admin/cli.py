"""Command line interface: ``saft-admin``."""

import asyncio
from collections.abc import Awaitable, Callable
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

import click
import structlog

from saft_admin.db import task_db_session
from saft_admin.logging import setup_logging
from saft_admin.models.enums import AggregateKind
from saft_admin.services.exceptions import ServiceError
from saft_admin.services.invoices import InvoiceService
from saft_admin.services.numbering import AllocationExhausted, DuplicateNumberRepair, SequenceAllocator
from saft_admin.services.numbering.series import default_series
from saft_admin.services.orders import OrderService
from saft_admin.services.reconciliation import LineItemReconciler, ReconciliationResult

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# sysexits.h EX_TEMPFAIL: safe to run the same command again
EXIT_RETRYABLE = 75

KIND_CHOICE = click.Choice([kind.value for kind in AggregateKind])


def _run(ctx: click.Context, operation: Callable[[Any], Awaitable[T]]) -> T:
    """Run ``operation(session)`` in a fresh task session, mapping service errors to exit codes."""

    async def runner() -> T:
        async with task_db_session(ctx.obj["database_url"]) as session:
            return await operation(session)

    try:
        return asyncio.run(runner())
    except AllocationExhausted as e:
        click.echo(f"Error: {e} (retry the command)", err=True)
        ctx.exit(EXIT_RETRYABLE)
    except ServiceError as e:
        raise click.ClickException(str(e)) from e
    raise AssertionError("unreachable")


def _parse_amount(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"{value!r} is not a decimal amount") from None


def _echo_result(result: ReconciliationResult) -> None:
    click.echo(
        f"{result.number}: {result.status.value} "
        f"(total {result.total_amount}, items {result.items_total}, difference {result.difference})"
    )
    for item in result.items_written:
        click.echo(f"  {item.position}. {item.quantity} x {item.product_name} @ {item.unit_price} = {item.total_price}")


@click.group()
@click.option(
    "--database-url",
    envvar="DATABASE_URL",
    default=None,
    help="SQLAlchemy async database URL (default: from settings)",
)
@click.pass_context
def cli(ctx: click.Context, database_url: str | None) -> None:
    """Order and invoice numbering and line-item maintenance."""
    setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


@cli.command()
@click.argument("series", type=click.Choice(sorted(default_series())))
@click.option("--count", default=1, show_default=True, type=click.IntRange(min=1), help="Numbers to allocate")
@click.pass_context
def allocate(ctx: click.Context, series: str, count: int) -> None:
    """Allocate and print the next number(s) of SERIES."""

    async def operation(session: Any) -> list[str]:
        allocator = SequenceAllocator(session)
        return [await allocator.allocate(series) for _ in range(count)]

    for number in _run(ctx, operation):
        click.echo(number)


@cli.command("repair-duplicates")
@click.argument("series", nargs=-1, type=click.Choice(sorted(default_series())))
@click.pass_context
def repair_duplicates(ctx: click.Context, series: tuple[str, ...]) -> None:
    """Renumber records that share their number with an older record.

    Repairs every series when none is given.
    """
    names = list(series) or sorted(default_series())

    async def operation(session: Any) -> list[Any]:
        repair = DuplicateNumberRepair(session)
        return [await repair.repair_duplicates(name) for name in names]

    for report in _run(ctx, operation):
        click.echo(f"{report.series_name}: {report.duplicate_groups} duplicate group(s)")
        for renumbering in report.renumbered:
            click.echo(f"  {renumbering.record_id}: {renumbering.old_number} -> {renumbering.new_number}")
        if report.remaining_duplicate_groups:
            raise click.ClickException(
                f"{report.remaining_duplicate_groups} duplicate group(s) remain in {report.series_name}"
            )


@cli.command()
@click.argument("aggregate_id")
@click.option("--kind", type=KIND_CHOICE, default=None, help="Aggregate kind (default: look up orders, then invoices)")
@click.pass_context
def reconcile(ctx: click.Context, aggregate_id: str, kind: str | None) -> None:
    """Verify or synthesize line items of one order or invoice."""
    aggregate_kind = AggregateKind(kind) if kind else None

    async def operation(session: Any) -> ReconciliationResult:
        return await LineItemReconciler(session).reconcile(aggregate_id, aggregate_kind)

    _echo_result(_run(ctx, operation))


@cli.command("reconcile-all")
@click.option("--kind", type=KIND_CHOICE, default=None, help="Only this aggregate kind (default: both)")
@click.option("--background", is_flag=True, help="Queue the sweep on the Dramatiq broker instead of running it")
@click.pass_context
def reconcile_all(ctx: click.Context, kind: str | None, background: bool) -> None:
    """Reconcile every order and invoice against its line items."""
    if background:
        # Importing the tasks package configures the Redis broker
        from saft_admin.tasks.maintenance import reconcile_line_items

        reconcile_line_items.send(kind)
        click.echo("Queued reconciliation sweep")
        return

    aggregate_kind = AggregateKind(kind) if kind else None

    async def operation(session: Any) -> list[ReconciliationResult]:
        return await LineItemReconciler(session).reconcile_all(aggregate_kind)

    for result in _run(ctx, operation):
        _echo_result(result)


@cli.command("create-order")
@click.option("--customer", "customer_name", default=None, help="Customer name")
@click.option("--total", "total", required=True, help="Order total, e.g. 519.80")
@click.option("--notes", default="", help="Free-form notes")
@click.pass_context
def create_order(ctx: click.Context, customer_name: str | None, total: str, notes: str) -> None:
    """Create an order for TOTAL with synthesized line items."""
    total_amount = _parse_amount(total)

    async def operation(session: Any) -> Any:
        return await OrderService(session).create_order(customer_name, total_amount=total_amount, notes=notes)

    order = _run(ctx, operation)
    click.echo(f"{order.order_number} ({order.id}) total {order.total_amount}, {len(order.line_items)} item(s)")


@cli.command("create-invoice")
@click.option("--amount", required=True, help="Invoice amount, e.g. 189.95")
@click.option("--order-id", default=None, help="Order the invoice is issued against")
@click.pass_context
def create_invoice(ctx: click.Context, amount: str, order_id: str | None) -> None:
    """Issue an invoice for AMOUNT with synthesized line items."""
    invoice_amount = _parse_amount(amount)
    assert invoice_amount is not None

    async def operation(session: Any) -> Any:
        return await InvoiceService(session).create_invoice(invoice_amount, order_id=order_id)

    invoice = _run(ctx, operation)
    click.echo(
        f"{invoice.invoice_number} ({invoice.id}) total {invoice.total_amount}, "
        f"tax {invoice.tax_amount}, due {invoice.due_date}"
    )


if __name__ == "__main__":
    cli()
