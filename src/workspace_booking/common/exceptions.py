"""
This file contains custom, application-specific exceptions.

Every error raised by the booking services is one of the three kinds below so
callers can branch on the type instead of parsing messages.
"""

class BookingDomainError(Exception):
    """Base class for all availability/booking errors."""
    kind: str = "error"
    retryable: bool = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(BookingDomainError):
    """
    Malformed input: bad interval, unknown asset, off-grid slot,
    invalid recurrence bounds, illegal status transition.
    Never retried automatically.
    """
    kind = "validation_error"


class ConflictError(BookingDomainError):
    """
    The requested interval is no longer available, or a write would break
    a uniqueness/exclusivity invariant. The caller should re-resolve fresh
    state and try again.
    """
    kind = "conflict"
    retryable = True


class NotFoundError(BookingDomainError):
    """Raised when a rule, exception or booking id does not exist."""
    kind = "not_found"
