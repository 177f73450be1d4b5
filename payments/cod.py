"""Cash-on-delivery confirmation."""

from typing import Optional

from models.booking import PaymentMethod
from models.user import User
from payments.settlement import Settlement, SettlementResult
from utils.exceptions import AlreadyPaidError, ValidationError


class CashOnDelivery:
    """
    Confirms a booking for payment at the workshop.

    There is nothing to verify externally: the owner's confirmation is the
    proof, and a second confirmation is an error rather than a no-op.
    """

    def __init__(self, settlement: Settlement):
        self.settlement = settlement

    async def confirm(
        self, booking_id: str, actor: User, payment_method: Optional[str] = "COD"
    ) -> SettlementResult:
        """
        Raises:
            ValidationError: If the request is not for COD
            BookingNotFoundError: If the booking does not exist
            ForbiddenError: If the actor does not own the booking
            AlreadyPaidError: If the booking is already paid
        """
        if payment_method != PaymentMethod.COD.value:
            raise ValidationError("This route is only for COD payments.")

        result = await self.settlement.settle(
            booking_id, PaymentMethod.COD, owner_id=actor.id
        )
        if result.already_paid:
            raise AlreadyPaidError("Booking is already paid.")
        return result
