"""Base service exceptions.

These exceptions are raised by the service layer and should be caught by the
caller (CLI command, background task) and turned into an exit code, a log
entry or a resubmission.
"""


class ServiceError(Exception):
    """Base service exception."""

    pass


class NotFoundError(ServiceError):
    """Resource not found."""

    pass


class ValidationError(ServiceError):
    """Validation error."""

    pass


class PersistenceFailure(ServiceError):
    """Backing store unreachable or a write rejected for an unexpected reason.

    Never retried by the service layer; the retry policy belongs to the caller.
    """

    pass
