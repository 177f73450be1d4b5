"""
eSewa redirect-gateway (ePay v2) integration.

initiate: build the signed form the browser posts to eSewa. Each attempt
gets a fresh transaction reference ``<booking id>-<epoch ms>-<8 hex>``,
stored on the booking; only the latest reference can settle it.

verify: eSewa redirects back with base64 JSON in ``?data=``. The payload's
signature is checked, then the transaction is re-queried from eSewa's
status endpoint before anything is marked paid.
"""

import base64
import binascii
import hashlib
import hmac
import json
import uuid
from typing import Any, Dict, List

from pydantic import BaseModel

from bookings.state_machine import ensure_settleable, ensure_unpaid
from config import Settings
from models.booking import PaymentMethod
from models.user import User
from payments.http import GatewayClient
from payments.settlement import Settlement, SettlementResult
from utils.datetime_utils import epoch_millis
from utils.exceptions import (
    BookingNotFoundError,
    ExternalVerificationError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from utils.locks import KeyedLock, booking_locks
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="payments.log", log_dir="logs"
)

SIGNED_FIELD_NAMES = "total_amount,transaction_uuid,product_code"
STATUS_COMPLETE = "COMPLETE"


class EsewaPaymentRequest(BaseModel):
    """Form fields the browser posts to eSewa."""

    form_url: str
    transaction_uuid: str
    fields: Dict[str, str]


def format_amount(amount: float) -> str:
    """Amount as sent to eSewa: no trailing '.0' for whole rupees."""
    return str(int(amount)) if float(amount).is_integer() else f"{amount:.2f}"


def parse_amount(value: Any) -> float:
    try:
        return float(str(value).replace(",", ""))
    except ValueError as e:
        raise ExternalVerificationError("eSewa returned an invalid amount.") from e


def booking_id_from_reference(transaction_uuid: str) -> str:
    """Recover the booking id from ``<booking id>-<epoch ms>-<suffix>``."""
    parts = transaction_uuid.rsplit("-", 2)
    if len(parts) != 3 or not parts[0] or not parts[1].isdigit():
        raise ExternalVerificationError("Unrecognised eSewa transaction reference.")
    return parts[0]


class EsewaGateway:
    """Signs eSewa payment requests and verifies their callbacks."""

    def __init__(
        self,
        settlement: Settlement,
        db,
        http: GatewayClient,
        product_code: str,
        secret_key: str,
        form_url: str,
        status_url: str,
        success_url: str,
        failure_url: str,
        locks: KeyedLock = booking_locks,
    ):
        self.settlement = settlement
        self.db = db
        self.http = http
        self.product_code = product_code
        self.secret_key = secret_key
        self.form_url = form_url
        self.status_url = status_url
        self.success_url = success_url
        self.failure_url = failure_url
        self.locks = locks

    @classmethod
    def from_settings(
        cls, settings: Settings, settlement: Settlement, db, http: GatewayClient
    ) -> "EsewaGateway":
        return cls(
            settlement,
            db,
            http,
            product_code=settings.esewa_product_code,
            secret_key=settings.esewa_secret_key,
            form_url=settings.esewa_form_url,
            status_url=settings.esewa_status_url,
            success_url=settings.esewa_success_url,
            failure_url=settings.esewa_failure_url,
        )

    # ========== Signing ==========

    def sign(self, message: str) -> str:
        """Base64 HMAC-SHA256 of ``message`` with the merchant secret."""
        digest = hmac.new(
            self.secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def sign_fields(self, fields: Dict[str, Any], signed_field_names: str) -> str:
        names: List[str] = [n.strip() for n in signed_field_names.split(",") if n.strip()]
        try:
            message = ",".join(f"{name}={fields[name]}" for name in names)
        except KeyError as e:
            raise ExternalVerificationError(f"Signed field {e} is missing.") from e
        return self.sign(message)

    # ========== Initiate ==========

    async def initiate(self, booking_id: str, actor: User) -> EsewaPaymentRequest:
        """
        Start a new payment attempt for a booking.

        Raises:
            BookingNotFoundError: If the booking does not exist
            ForbiddenError: If the actor does not own the booking
            AlreadyPaidError: If the booking is already paid
        """
        if not booking_id:
            raise ValidationError("Booking ID is required.")

        async with self.locks.hold(booking_id):
            booking = await self.db.get_booking_by_id(booking_id)
            if booking is None:
                raise BookingNotFoundError("Booking not found.")
            if booking.customer_id != actor.id:
                raise ForbiddenError("Not authorized.")
            ensure_unpaid(booking)
            ensure_settleable(booking)
            if booking.final_amount <= 0:
                raise InvalidStateError("Booking does not have a final amount to pay.")

            transaction_uuid = f"{booking.id}-{epoch_millis()}-{uuid.uuid4().hex[:8]}"
            amount = format_amount(booking.final_amount)

            fields = {
                "amount": amount,
                "success_url": self.success_url,
                "failure_url": self.failure_url,
                "product_delivery_charge": "0",
                "product_service_charge": "0",
                "product_code": self.product_code,
                "signed_field_names": SIGNED_FIELD_NAMES,
                "tax_amount": "0",
                "total_amount": amount,
                "transaction_uuid": transaction_uuid,
            }
            fields["signature"] = self.sign_fields(fields, SIGNED_FIELD_NAMES)

            stored = await self.db.update_booking(
                booking_id,
                {"payment_reference": transaction_uuid},
                expected={"is_paid": False},
            )
            if stored is None:
                raise InvalidStateError("Booking changed during payment. Please try again.")

        logger.info(f"eSewa payment {transaction_uuid} initiated for {amount}")
        return EsewaPaymentRequest(
            form_url=self.form_url, transaction_uuid=transaction_uuid, fields=fields
        )

    # ========== Verify ==========

    def decode_callback(self, data: str) -> Dict[str, Any]:
        """
        Decode and authenticate the ``data`` query parameter.

        Raises:
            ValidationError: If no data was given
            ExternalVerificationError: If it cannot be decoded, is not
                signed with our secret, or the payment is not complete
        """
        if not data:
            raise ValidationError("No data provided for verification")

        try:
            padded = data + "=" * (-len(data) % 4)
            decoded = json.loads(base64.b64decode(padded, altchars=b"-_").decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise ExternalVerificationError("Invalid eSewa payment data.") from e

        if not isinstance(decoded, dict):
            raise ExternalVerificationError("Invalid eSewa payment data.")

        signature = decoded.get("signature")
        signed_field_names = decoded.get("signed_field_names")
        if not signature or not signed_field_names:
            raise ExternalVerificationError("eSewa payment data is not signed.")
        expected = self.sign_fields(decoded, signed_field_names)
        if not hmac.compare_digest(expected, str(signature)):
            logger.warning(
                f"Invalid eSewa signature for transaction {decoded.get('transaction_uuid')}"
            )
            raise ExternalVerificationError("eSewa signature mismatch.")

        if decoded.get("status") != STATUS_COMPLETE:
            raise ExternalVerificationError(
                f"Payment not complete. Status: {decoded.get('status')}"
            )
        if decoded.get("product_code") != self.product_code:
            raise ExternalVerificationError("eSewa product code mismatch.")
        if not decoded.get("transaction_uuid") or decoded.get("total_amount") is None:
            raise ExternalVerificationError("Invalid eSewa payment data.")

        return decoded

    async def _query_status(self, transaction_uuid: str, total_amount: str) -> Dict[str, Any]:
        return await self.http.request_json(
            "GET",
            self.status_url,
            gateway="eSewa",
            params={
                "product_code": self.product_code,
                "total_amount": total_amount,
                "transaction_uuid": transaction_uuid,
            },
        )

    async def verify(self, data: str) -> SettlementResult:
        """
        Verify an eSewa callback and settle its booking.

        A callback for an already-paid booking succeeds without side effects.
        """
        decoded = self.decode_callback(data)
        transaction_uuid = str(decoded["transaction_uuid"])
        total_amount = str(decoded["total_amount"])
        booking_id = booking_id_from_reference(transaction_uuid)

        booking = await self.db.get_booking_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError("Booking not found after payment.")
        if booking.is_paid:
            return await self.settlement.settle(booking_id, PaymentMethod.ESEWA)
        if booking.payment_reference != transaction_uuid:
            logger.warning(
                f"Ignoring callback for superseded eSewa transaction {transaction_uuid}"
            )
            raise ExternalVerificationError(
                "This payment attempt has been superseded by a newer one."
            )

        status = await self._query_status(transaction_uuid, total_amount)
        if status.get("status") != STATUS_COMPLETE:
            logger.warning(
                f"eSewa status for {transaction_uuid} is {status.get('status')}, not settling"
            )
            raise ExternalVerificationError("eSewa payment verification failed")

        confirmed = parse_amount(status.get("total_amount", total_amount))
        logger.info(f"eSewa confirmed transaction {transaction_uuid} for {confirmed}")

        return await self.settlement.settle(
            booking_id,
            PaymentMethod.ESEWA,
            amount_confirmed=confirmed,
            payment_reference=transaction_uuid,
        )
