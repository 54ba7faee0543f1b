"""
Error taxonomy for chart operations.

Every error is scoped to the single operation that raised it. Only
ChartTimeoutError is retryable; the caller owns the retry policy.
"""


class ChartError(Exception):
    """Base class for all chart engine errors."""

    retryable: bool = False


class ValidationError(ChartError, ValueError):
    """A value or schedule parameter is malformed for its row or schedule."""


class NotFoundError(ChartError, LookupError):
    """The targeted row, entry or schedule does not exist."""


class OutOfRangeError(ChartError):
    """The targeted hour lies before the hospitalization's admission."""


class ChartTimeoutError(ChartError, TimeoutError):
    """An external store call exceeded its time bound."""

    retryable = True
