"""Reconciliation exceptions."""

from saft_admin.services.exceptions import NotFoundError


class AggregateNotFound(NotFoundError):
    """No order or invoice with the given id."""

    def __init__(self, aggregate_id: str):
        self.aggregate_id = aggregate_id
        super().__init__(f"No order or invoice with id {aggregate_id}")
