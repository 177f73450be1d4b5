"""
Khalti token-gateway verification.

The browser widget hands us a one-time token; the server confirms it with
Khalti using the merchant secret before the booking is settled.
"""

from typing import Any, Dict

from config import Settings
from models.booking import PaymentMethod
from models.user import User
from payments.http import GatewayClient
from payments.settlement import Settlement, SettlementResult
from utils.constants import PAISA_PER_RUPEE
from utils.exceptions import (
    BookingNotFoundError,
    ExternalVerificationError,
    ForbiddenError,
    ValidationError,
)
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="payments.log", log_dir="logs"
)


def to_paisa(amount: float) -> int:
    return int(round(amount * PAISA_PER_RUPEE))


class KhaltiGateway:
    """Verifies Khalti payment tokens and settles the booking."""

    def __init__(
        self,
        settlement: Settlement,
        db,
        http: GatewayClient,
        secret_key: str,
        verify_url: str,
    ):
        self.settlement = settlement
        self.db = db
        self.http = http
        self.secret_key = secret_key
        self.verify_url = verify_url

    @classmethod
    def from_settings(
        cls, settings: Settings, settlement: Settlement, db, http: GatewayClient
    ) -> "KhaltiGateway":
        return cls(
            settlement,
            db,
            http,
            secret_key=settings.khalti_secret_key,
            verify_url=settings.khalti_verify_url,
        )

    async def _verify_token(self, token: str, amount: int) -> Dict[str, Any]:
        return await self.http.request_json(
            "POST",
            self.verify_url,
            gateway="Khalti",
            json={"token": token, "amount": amount},
            headers={"Authorization": f"Key {self.secret_key}"},
        )

    async def verify_payment(
        self, booking_id: str, token: str, amount: Any, actor: User
    ) -> SettlementResult:
        """
        Verify a Khalti token for a booking and settle it.

        Args:
            booking_id: Booking being paid
            token: Token returned by the Khalti widget
            amount: Claimed amount in paisa
            actor: Authenticated user, who must own the booking

        Raises:
            ValidationError: If token, amount or booking id is missing
            ExternalVerificationError: If Khalti does not confirm the payment
                or the amount does not match the booking total
        """
        if not token or not amount or not booking_id:
            raise ValidationError("Missing payment verification details.")
        try:
            amount_paisa = int(amount)
        except (TypeError, ValueError) as e:
            raise ValidationError("Amount must be an integer number of paisa.") from e

        booking = await self.db.get_booking_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError("Booking not found.")
        if booking.customer_id != actor.id:
            raise ForbiddenError("Not authorized.")
        if booking.is_paid:
            return await self.settlement.settle(
                booking_id, PaymentMethod.KHALTI, owner_id=actor.id
            )

        if amount_paisa != to_paisa(booking.final_amount):
            raise ExternalVerificationError(
                "Payment amount does not match the booking total."
            )

        payload = await self._verify_token(token, amount_paisa)
        if not payload.get("idx"):
            logger.warning(f"Khalti did not confirm token for booking {booking_id}")
            raise ExternalVerificationError("Khalti payment verification failed.")

        confirmed_paisa = payload.get("amount", amount_paisa)
        logger.info(
            f"Khalti confirmed payment {payload['idx']} of {confirmed_paisa} paisa "
            f"for booking {booking_id}"
        )

        return await self.settlement.settle(
            booking_id,
            PaymentMethod.KHALTI,
            amount_confirmed=int(confirmed_paisa) / PAISA_PER_RUPEE,
            owner_id=actor.id,
        )
