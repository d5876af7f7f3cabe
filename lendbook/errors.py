"""Exception hierarchy for the lending engine."""


class LendbookError(Exception):
    """Base exception for all lendbook errors."""


class InvalidOperation(LendbookError):
    """Raised when an operation does not apply to the entity it was called on.

    Calling the installment-only accrual or allocation path on a bullet loan
    is the typical case; the calculation is aborted with no partial result.
    """


class NotFound(LendbookError):
    """Raised when a referenced loan, payment or fixed income does not exist."""


class ValidationError(LendbookError, ValueError):
    """Raised when an input value is malformed or out of range."""
