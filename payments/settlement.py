"""
Settlement: the one place a booking becomes paid.

All three payment paths end here. A settlement
1. takes the booking's lock,
2. returns "already paid" with no side effects if the booking is paid,
3. claims the booking with a check-and-set on ``is_paid = false`` that
   also refuses a booking cancelled in the meantime,
4. awards loyalty points only if this call won the claim (a failed award
   is logged for reconciliation and leaves ``points_awarded`` at 0),
5. queues the confirmation email after the lock is released.

Two duplicate callbacks for the same booking therefore produce exactly one
paid transition and one point award.
"""

from typing import Optional

from pydantic import BaseModel

from bookings.loyalty import LoyaltyLedger
from bookings.state_machine import ensure_settleable
from models.booking import Booking, PaymentMethod
from notifications.templates import payment_confirmed_email
from utils.constants import CURRENCY_DECIMALS
from utils.exceptions import (
    BookingNotFoundError,
    DatabaseError,
    ExternalVerificationError,
    ForbiddenError,
    InvalidStateError,
    UserNotFoundError,
)
from utils.locks import KeyedLock, booking_locks
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="payments.log", log_dir="logs"
)


class SettlementResult(BaseModel):
    """Outcome of a settlement attempt that did not raise."""

    booking: Booking
    already_paid: bool = False
    points_awarded: int = 0
    amount_confirmed: float = 0

    @property
    def success(self) -> bool:
        return True

    @property
    def message(self) -> str:
        if self.already_paid:
            return "Payment was already verified."
        if not self.points_awarded:
            return "Payment successful!"
        return f"Payment successful! You've earned {self.points_awarded} loyalty points."


def amounts_match(paid: float, expected: float) -> bool:
    return round(paid, CURRENCY_DECIMALS) == round(expected, CURRENCY_DECIMALS)


class Settlement:
    """Marks bookings paid at most once."""

    def __init__(
        self,
        db,
        ledger: LoyaltyLedger,
        dispatcher,
        locks: KeyedLock = booking_locks,
    ):
        self.db = db
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.locks = locks

    async def settle(
        self,
        booking_id: str,
        method: PaymentMethod,
        amount_confirmed: Optional[float] = None,
        owner_id: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> SettlementResult:
        """
        Mark a booking paid after its payment has been verified.

        Args:
            booking_id: Booking to settle
            method: Payment method that covered it
            amount_confirmed: Amount the provider confirmed, checked against
                the booking's final amount
            owner_id: If given, the booking must belong to this user
            payment_reference: If given, must be the booking's latest
                gateway transaction reference

        Raises:
            BookingNotFoundError: If the booking does not exist
            ForbiddenError: If ``owner_id`` does not own the booking
            ExternalVerificationError: On amount or reference mismatch
            InvalidStateError: If the booking is cancelled
        """
        async with self.locks.hold(booking_id):
            booking = await self.db.get_booking_by_id(booking_id)
            if booking is None:
                raise BookingNotFoundError("Booking not found.")
            if owner_id is not None and booking.customer_id != owner_id:
                raise ForbiddenError("Not authorized.")

            if booking.is_paid:
                logger.info(f"Booking {booking_id} already paid, settlement is a no-op")
                return self._already_paid(booking)

            ensure_settleable(booking)

            if payment_reference is not None and booking.payment_reference != payment_reference:
                logger.warning(
                    f"Rejected superseded payment reference {payment_reference} "
                    f"for booking {booking_id}"
                )
                raise ExternalVerificationError(
                    "This payment attempt has been superseded by a newer one."
                )

            if amount_confirmed is not None and not amounts_match(
                amount_confirmed, booking.final_amount
            ):
                logger.warning(
                    f"Amount mismatch for booking {booking_id}: paid {amount_confirmed}, "
                    f"expected {booking.final_amount}"
                )
                raise ExternalVerificationError(
                    "Payment amount does not match the booking total."
                )

            points = self.ledger.reward_for(booking.final_amount)
            claimed = await self.db.mark_booking_paid(
                booking_id, method, points, payment_reference=payment_reference
            )

            if claimed is None:
                current = await self.db.get_booking_by_id(booking_id)
                if current is None:
                    raise BookingNotFoundError("Booking not found.")
                if current.is_paid:
                    logger.info(f"Booking {booking_id} was settled by a concurrent request")
                    return self._already_paid(current)
                ensure_settleable(current)
                raise InvalidStateError("Booking changed during payment. Please try again.")

            try:
                await self.ledger.award(claimed.customer_id, points)
            except (DatabaseError, UserNotFoundError) as e:
                logger.error(
                    f"Booking {booking_id} is paid but awarding {points} points to user "
                    f"{claimed.customer_id} failed, needs reconciliation: {e}"
                )
                claimed = await self._clear_award(claimed, points)
                points = 0

        logger.info(
            f"Booking {booking_id} paid via {claimed.payment_method}: "
            f"{claimed.final_amount}, {points} points awarded"
        )
        await self._notify(claimed, points)

        return SettlementResult(
            booking=claimed,
            points_awarded=points,
            amount_confirmed=(
                amount_confirmed if amount_confirmed is not None else claimed.final_amount
            ),
        )

    def _already_paid(self, booking: Booking) -> SettlementResult:
        return SettlementResult(
            booking=booking,
            already_paid=True,
            points_awarded=booking.points_awarded,
            amount_confirmed=booking.final_amount,
        )

    async def _clear_award(self, booking: Booking, points: int) -> Booking:
        """Record that the points of a paid booking were never granted."""
        try:
            cleared = await self.db.update_booking(
                booking.id, {"points_awarded": 0}, expected={"points_awarded": points}
            )
        except DatabaseError as e:
            logger.error(f"Could not clear points_awarded on booking {booking.id}: {e}")
            return booking
        return cleared or booking

    async def _notify(self, booking: Booking, points: int) -> None:
        try:
            customer = await self.db.get_user_by_id(booking.customer_id)
        except DatabaseError as e:
            logger.error(f"Could not load customer to notify for booking {booking.id}: {e}")
            return
        if customer is None or not customer.email:
            logger.warning(f"No email on file for customer of booking {booking.id}")
            return
        subject, html = payment_confirmed_email(booking, customer.full_name, points)
        self.dispatcher.send_email(str(customer.email), subject, html)
