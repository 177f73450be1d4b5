"""
Booking state machine.

``status`` says where the vehicle is; ``payment_status`` / ``is_paid`` say
whether money changed hands. The two are orthogonal, but every change to
either goes through the tables below.

Status (administrator only):

    Pending      -> In Progress, Cancelled
    In Progress  -> Completed, Cancelled, Pending (reset)
    Completed    -> (terminal)
    Cancelled    -> (terminal)

Payment status:

    Pending <-> Failed            patch from the booking owner or an admin
    Pending, Failed -> Paid       settlement only, sets is_paid for good
"""

import logging
from typing import Any, Dict, FrozenSet, Mapping

from models.booking import Booking, BookingStatus, PaymentStatus
from utils.exceptions import (
    AlreadyPaidError,
    BookingLockedError,
    InvalidStateError,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS: Mapping[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED}
    ),
    BookingStatus.IN_PROGRESS: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.PENDING}
    ),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

PAYMENT_STATUS_PATCHES: Mapping[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.PAID: frozenset(),
}

SETTLEABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.FAILED})

# Statuses an admin "delete" turns into a cancellation rather than an archive
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.IN_PROGRESS})

# Columns only settlement may write
_SETTLEMENT_COLUMNS = frozenset({"is_paid", "points_awarded"})


def is_terminal(status: str) -> bool:
    return not STATUS_TRANSITIONS[BookingStatus(status)]


def check_status_transition(current: str, target: str) -> BookingStatus:
    """
    Validate a status change.

    Args:
        current: The booking's status now
        target: Requested status

    Returns:
        The target as a BookingStatus

    Raises:
        InvalidTransitionError: If the change is not in the table
    """
    try:
        target_status = BookingStatus(target)
    except ValueError as e:
        raise InvalidTransitionError("Invalid status value") from e

    current_status = BookingStatus(current)
    if target_status not in STATUS_TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            f"Cannot change booking status from {current_status.value} "
            f"to {target_status.value}."
        )
    return target_status


def check_payment_status_patch(current: str, target: str) -> PaymentStatus:
    """
    Validate a direct payment status write (not a settlement).

    Raises:
        AlreadyPaidError: If the booking is already paid
        InvalidTransitionError: If the change is not allowed
    """
    try:
        target_status = PaymentStatus(target)
    except ValueError as e:
        raise InvalidTransitionError("Invalid payment status value") from e

    current_status = PaymentStatus(current)
    if current_status == PaymentStatus.PAID:
        raise AlreadyPaidError("Booking is already paid.")
    if target_status == PaymentStatus.PAID:
        raise InvalidTransitionError(
            "A booking can only be marked paid by a confirmed payment."
        )
    if target_status not in PAYMENT_STATUS_PATCHES[current_status]:
        raise InvalidTransitionError(
            f"Cannot change payment status from {current_status.value} "
            f"to {target_status.value}."
        )
    return target_status


def ensure_editable(booking: Booking) -> None:
    """
    Priced fields may only change while the booking is Pending, unpaid and undiscounted.

    Raises:
        BookingLockedError: Otherwise
    """
    if (
        booking.is_paid
        or booking.discount_applied
        or booking.status != BookingStatus.PENDING.value
    ):
        raise BookingLockedError(
            "Cannot edit a booking that is already in progress, paid, or has a discount."
        )


def ensure_unpaid(booking: Booking, message: str = "Booking is already paid.") -> None:
    if booking.is_paid:
        raise AlreadyPaidError(message)


def ensure_settleable(booking: Booking) -> None:
    """A settlement may only claim an unpaid booking that has not been cancelled."""
    if booking.status == BookingStatus.CANCELLED.value:
        raise InvalidStateError("Cannot pay for a cancelled booking.")
    if PaymentStatus(booking.payment_status) not in SETTLEABLE_PAYMENT_STATUSES:
        raise AlreadyPaidError("Booking is already paid.")


def ensure_reviewable(booking: Booking) -> None:
    if booking.status != BookingStatus.COMPLETED.value:
        raise InvalidStateError("You can only review completed services.")
    if booking.review_submitted:
        raise InvalidStateError("You have already reviewed this booking.")


def guard_update(booking: Booking, data: Dict[str, Any]) -> None:
    """
    Reject writes that would break the paid-flag and one-way-flag rules.

    Checked centrally before every booking update that is not a settlement.
    """
    if _SETTLEMENT_COLUMNS & data.keys():
        raise InvalidStateError("Payment fields can only be written by settlement.")
    if data.get("payment_status") == PaymentStatus.PAID.value:
        raise InvalidTransitionError(
            "A booking can only be marked paid by a confirmed payment."
        )
    if booking.is_paid and "payment_status" in data:
        raise AlreadyPaidError("Booking is already paid.")
    for flag in ("review_submitted", "archived_by_admin", "discount_applied"):
        if getattr(booking, flag) and data.get(flag) is False:
            raise InvalidStateError(f"{flag} cannot be cleared.")
