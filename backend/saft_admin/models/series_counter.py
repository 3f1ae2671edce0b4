"""Series counter model backing document number allocation."""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from saft_admin.models.defaults import utc_now


class SeriesCounter(SQLModel, table=True):
    """Highest committed numeric suffix for one document number series.

    One row per series ("orders", "invoices"). The row is created lazily on
    the first allocation and only ever advanced by a compare-and-set update
    (``UPDATE ... WHERE last_issued = <value read>``), so ``last_issued``
    never moves backwards and concurrent writers cannot both claim a value.
    """

    __tablename__ = "series_counters"

    series_name: str = Field(primary_key=True, max_length=64)
    prefix: str = Field(max_length=32)
    pad_width: int = 5
    last_issued: int = 0
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
