"""
Custom exception classes for better error handling.
Provides specific error types instead of generic exceptions.

The API layer maps each family to an HTTP status:
NotFoundError -> 404, ForbiddenError -> 403, AuthenticationError -> 401,
InvalidStateError / ValidationError / PaymentError -> 400.
DependencyUnavailableError is only ever logged.
"""


class FixHubError(Exception):
    """Base exception for booking platform errors."""

    pass


class DatabaseError(FixHubError):
    """Base exception for database operations."""

    pass


class NotFoundError(FixHubError):
    """Raised when a referenced record does not exist."""

    pass


class BookingNotFoundError(NotFoundError):
    """Raised when a booking is not found."""

    pass


class UserNotFoundError(NotFoundError):
    """Raised when a user is not found."""

    pass


class ServiceNotFoundError(NotFoundError):
    """Raised when a service is not found."""

    pass


class AuthenticationError(FixHubError):
    """Raised when the caller cannot be identified."""

    pass


class ForbiddenError(FixHubError):
    """Raised when the actor is not the booking owner or not an admin."""

    pass


class InvalidStateError(FixHubError):
    """Raised when an operation's precondition on the booking does not hold."""

    pass


class InvalidTransitionError(InvalidStateError):
    """Raised when a status change is not in the transition table."""

    pass


class BookingLockedError(InvalidStateError):
    """Raised when editing priced fields of a paid, discounted or started booking."""

    pass


class AlreadyPaidError(InvalidStateError):
    """Raised when paying, discounting or cancelling a paid booking."""

    pass


class InsufficientLoyaltyPointsError(InvalidStateError):
    """Raised when a spend would take the balance below zero."""

    pass


class ValidationError(FixHubError):
    """Raised when input validation fails."""

    pass


class PaymentError(FixHubError):
    """Base exception for payment operations."""

    pass


class ExternalVerificationError(PaymentError):
    """Raised when a payment provider does not confirm a payment."""

    pass


class DependencyUnavailableError(FixHubError):
    """Raised when an outbound email or push delivery fails."""

    pass
