"""Document numbering exceptions."""

from saft_admin.services.exceptions import ServiceError


class NumberingError(ServiceError):
    """Base numbering exception."""

    pass


class SeriesNotConfigured(NumberingError):
    """Series name has no prefix / pad width configured. Not retryable."""

    def __init__(self, series_name: str):
        self.series_name = series_name
        super().__init__(f"Number series {series_name!r} is not configured")


class AllocationExhausted(NumberingError):
    """Retry ceiling hit under contention.

    Retryable at a higher level: resubmit the whole create-record operation.
    """

    def __init__(self, series_name: str, attempts: int):
        self.series_name = series_name
        self.attempts = attempts
        super().__init__(f"Could not allocate a number in series {series_name!r} after {attempts} attempts")


class SeriesCounterCorrupted(NumberingError):
    """Stored counter disagrees with the series configuration or is negative."""

    def __init__(self, series_name: str, reason: str):
        self.series_name = series_name
        self.reason = reason
        super().__init__(f"Counter for series {series_name!r} is corrupted: {reason}")


class CounterConflict(NumberingError):
    """Lost compare-and-set race or candidate already taken.

    Handled inside SequenceAllocator by retrying; never escapes allocate().
    """

    pass
