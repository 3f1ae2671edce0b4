"""unique_document_numbers

Make order and invoice numbers unique. Run `saft-admin repair-duplicates`
first; the index creation fails while duplicate numbers remain.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 10:47:05.118964

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.drop_index(op.f("ix_orders_order_number"), table_name="orders")
    op.create_index(op.f("ix_orders_order_number"), "orders", ["order_number"], unique=True)
    op.drop_index(op.f("ix_invoices_invoice_number"), table_name="invoices")
    op.create_index(op.f("ix_invoices_invoice_number"), "invoices", ["invoice_number"], unique=True)


def downgrade() -> None:
    op.drop_index(op.f("ix_invoices_invoice_number"), table_name="invoices")
    op.create_index(op.f("ix_invoices_invoice_number"), "invoices", ["invoice_number"], unique=False)
    op.drop_index(op.f("ix_orders_order_number"), table_name="orders")
    op.create_index(op.f("ix_orders_order_number"), "orders", ["order_number"], unique=False)
