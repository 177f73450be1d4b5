"""
Booking operations for customers and administrators.

Every mutation runs under the booking's in-process lock and is written
with a check-and-set on the columns it was decided from, so a concurrent
request in another process makes the write fail instead of clobbering.
Notifications are collected while the lock is held and queued on the
dispatcher only after it is released.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from bookings.invoice import generate_invoice
from bookings.loyalty import LoyaltyLedger
from bookings.pricing import DistanceProvider, price_booking, reprice
from bookings.state_machine import (
    ACTIVE_STATUSES,
    check_payment_status_patch,
    check_status_transition,
    ensure_editable,
    ensure_reviewable,
    ensure_unpaid,
    guard_update,
)
from models.booking import (
    AdminBookingUpdate,
    Booking,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
)
from models.service import Service, ServiceReview
from models.user import User
from notifications.templates import (
    booking_cancelled_email,
    service_completed_email,
    status_update_message,
)
from utils.constants import (
    BOOKING_STATUS_EVENT,
    DISCOUNT_POINTS_COST,
    MAX_ADDRESS_LENGTH,
    MAX_BIKE_MODEL_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_REVIEW_COMMENT_LENGTH,
    customer_channel,
)
from utils.datetime_utils import utc_now
from utils.exceptions import (
    BookingNotFoundError,
    DatabaseError,
    ForbiddenError,
    InvalidStateError,
    ServiceNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from utils.locks import KeyedLock, booking_locks
from utils.validation import sanitize_text

logger = logging.getLogger(__name__)

_CONCURRENT_CHANGE = "Booking was changed by another request. Please try again."

# Patch fields that change what the customer pays
_PICKUP_FIELDS = {
    "requested_pickup_dropoff",
    "pickup_address",
    "dropoff_address",
    "pickup_coordinates",
    "dropoff_coordinates",
}


def paginate(bookings: List[Booking], total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "data": bookings,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "currentPage": page,
    }


class BookingService:
    """Booking lifecycle: creation, edits, discount, cancellation, admin actions."""

    def __init__(
        self,
        db,
        ledger: LoyaltyLedger,
        dispatcher,
        distance_provider: DistanceProvider,
        locks: KeyedLock = booking_locks,
    ):
        self.db = db
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.distance_provider = distance_provider
        self.locks = locks

    # ========== Lookups ==========

    async def _load(self, booking_id: str) -> Booking:
        booking = await self.db.get_booking_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError("Booking not found.")
        return booking

    async def _load_owned(
        self, booking_id: str, actor: User, allow_admin: bool = False
    ) -> Booking:
        booking = await self._load(booking_id)
        if booking.customer_id != actor.id and not (allow_admin and actor.is_admin):
            raise ForbiddenError("Not authorized.")
        return booking

    async def _write(
        self, booking: Booking, data: Dict[str, Any], expected: Dict[str, Any]
    ) -> Booking:
        guard_update(booking, data)
        updated = await self.db.update_booking(booking.id, data, expected=expected)
        if updated is None:
            raise InvalidStateError(_CONCURRENT_CHANGE)
        return updated

    @staticmethod
    def _snapshot(booking: Booking) -> Dict[str, Any]:
        return {
            "status": booking.status,
            "is_paid": booking.is_paid,
            "discount_applied": booking.discount_applied,
        }

    # ========== Customer Operations ==========

    async def create_booking(self, customer_id: str, data: BookingCreate) -> Booking:
        """
        Create a Pending, unpaid booking priced from the service's current price.

        Raises:
            UserNotFoundError: If the customer does not exist
            ServiceNotFoundError: If the service does not exist
            ValidationError: If pickup is requested without full details
        """
        user = await self.db.get_user_by_id(customer_id)
        if user is None:
            raise UserNotFoundError("User not found.")

        service = await self.db.get_service_by_id(data.service_id)
        if service is None:
            raise ServiceNotFoundError("Service not found.")

        workshop = await self.db.get_or_create_workshop()
        pickup = data.requested_pickup_dropoff

        breakdown = price_booking(
            service.price,
            pickup,
            workshop.pickup_dropoff_charge_per_km,
            self.distance_provider,
            pickup=data.pickup_coordinates,
            dropoff=data.dropoff_coordinates,
        )

        booking = Booking(
            customer_id=user.id,
            customer_name=user.full_name,
            service_id=service.id,
            service_type=service.name,
            bike_model=sanitize_text(data.bike_model, MAX_BIKE_MODEL_LENGTH),
            date=data.date,
            notes=sanitize_text(data.notes or "", MAX_NOTES_LENGTH),
            requested_pickup_dropoff=pickup,
            pickup_address=(
                sanitize_text(data.pickup_address, MAX_ADDRESS_LENGTH) if pickup else ""
            ),
            dropoff_address=(
                sanitize_text(data.dropoff_address, MAX_ADDRESS_LENGTH) if pickup else ""
            ),
            pickup_coordinates=data.pickup_coordinates if pickup else None,
            dropoff_coordinates=data.dropoff_coordinates if pickup else None,
            **breakdown.as_update(),
        )
        if not booking.bike_model:
            raise ValidationError("Please provide all required fields (Service, Bike Model, Date).")

        created = await self.db.create_booking(booking)
        logger.info(
            f"Booking {created.id} created for user {user.id}: "
            f"{created.service_type}, final amount {created.final_amount}"
        )
        return created

    async def list_bookings(
        self, customer_id: str, page: int, limit: int
    ) -> Dict[str, Any]:
        bookings, total = await self.db.get_bookings_by_customer(customer_id, page, limit)
        return paginate(bookings, total, page, limit)

    async def get_booking(self, booking_id: str, actor: User) -> Booking:
        return await self._load_owned(booking_id, actor)

    async def get_pending_bookings(self, customer_id: str) -> List[Booking]:
        return await self.db.get_pending_bookings(customer_id)

    async def get_booking_history(self, customer_id: str) -> List[Booking]:
        return await self.db.get_booking_history(customer_id)

    async def update_booking(
        self, booking_id: str, actor: User, patch: BookingUpdate
    ) -> Booking:
        """
        Apply a customer edit.

        ``payment_method`` and ``payment_status`` (Pending/Failed only) are
        accepted in any state of an unpaid booking. ``status`` is accepted
        from administrators only and goes through the transition table.
        Every other field requires an editable booking and re-prices it.

        Raises:
            BookingLockedError: Priced fields on a paid, discounted or started booking
            ForbiddenError: Not the owner, or a status change from a non-admin
        """
        if patch.status is not None and not actor.is_admin:
            raise ForbiddenError("Only an administrator can change the booking status.")

        outbox: List[Tuple] = []
        async with self.locks.hold(booking_id):
            booking = await self._load_owned(booking_id, actor, allow_admin=True)
            data: Dict[str, Any] = {}

            if patch.payment_method is not None and (
                patch.payment_method != booking.payment_method
            ):
                ensure_unpaid(booking, "Cannot change the payment method of a paid booking.")
                data["payment_method"] = patch.payment_method

            if patch.payment_status is not None and (
                patch.payment_status != booking.payment_status
            ):
                data["payment_status"] = check_payment_status_patch(
                    booking.payment_status, patch.payment_status
                )

            content_fields = patch.model_fields_set - {
                "status",
                "payment_method",
                "payment_status",
            }
            if content_fields:
                ensure_editable(booking)
                data.update(await self._edited_fields(booking, patch, content_fields))

            if data:
                booking = await self._write(booking, data, self._snapshot(booking))
                logger.info(f"Booking {booking_id} updated: {sorted(data)}")

            if patch.status is not None and patch.status != booking.status:
                booking = await self._transition(booking, patch.status, outbox)

        self._flush(outbox)
        return booking

    async def _edited_fields(
        self, booking: Booking, patch: BookingUpdate, fields: set
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        total_cost = booking.total_cost

        if patch.service_id and patch.service_id != booking.service_id:
            service = await self.db.get_service_by_id(patch.service_id)
            if service is None:
                raise ServiceNotFoundError("New service not found.")
            data["service_id"] = service.id
            data["service_type"] = service.name
            total_cost = service.price

        if patch.bike_model:
            data["bike_model"] = sanitize_text(patch.bike_model, MAX_BIKE_MODEL_LENGTH)
        if patch.date is not None:
            data["date"] = patch.date
        if "notes" in fields:
            data["notes"] = sanitize_text(patch.notes or "", MAX_NOTES_LENGTH)

        if "service_id" not in data and not (_PICKUP_FIELDS & fields):
            return data

        requested = (
            patch.requested_pickup_dropoff
            if patch.requested_pickup_dropoff is not None
            else booking.requested_pickup_dropoff
        )

        if requested:
            pickup_address = patch.pickup_address or booking.pickup_address
            dropoff_address = patch.dropoff_address or booking.dropoff_address
            pickup = patch.pickup_coordinates or booking.pickup_coordinates
            dropoff = patch.dropoff_coordinates or booking.dropoff_coordinates
            if not all([pickup_address, dropoff_address, pickup, dropoff]):
                raise ValidationError(
                    "Pickup/Dropoff details are incomplete for requested service."
                )
            data.update(
                pickup_address=sanitize_text(pickup_address, MAX_ADDRESS_LENGTH),
                dropoff_address=sanitize_text(dropoff_address, MAX_ADDRESS_LENGTH),
                pickup_coordinates=pickup,
                dropoff_coordinates=dropoff,
            )
        else:
            pickup = dropoff = None
            data.update(
                pickup_address="",
                dropoff_address="",
                pickup_coordinates=None,
                dropoff_coordinates=None,
            )

        workshop = await self.db.get_or_create_workshop()
        breakdown = price_booking(
            total_cost,
            requested,
            workshop.pickup_dropoff_charge_per_km,
            self.distance_provider,
            pickup=pickup,
            dropoff=dropoff,
            discount_applied=booking.discount_applied,
        )
        data["requested_pickup_dropoff"] = requested
        data.update(breakdown.as_update())
        return data

    async def cancel_booking(self, booking_id: str, actor: User) -> int:
        """
        Customer cancellation: delete an unpaid booking outright.

        Returns:
            Loyalty points refunded (100 if a discount had been applied, else 0)

        Raises:
            AlreadyPaidError: If the booking has been paid for
        """
        async with self.locks.hold(booking_id):
            booking = await self._load_owned(booking_id, actor)
            ensure_unpaid(booking, "Cannot cancel a booking that has been paid for.")

            deleted = await self.db.delete_booking(
                booking_id,
                expected={
                    "is_paid": False,
                    "discount_applied": booking.discount_applied,
                },
            )
            if not deleted:
                raise InvalidStateError(_CONCURRENT_CHANGE)

            refunded = 0
            if booking.discount_applied:
                await self.ledger.refund(booking.customer_id, DISCOUNT_POINTS_COST)
                refunded = DISCOUNT_POINTS_COST

        logger.info(f"Booking {booking_id} cancelled by customer, {refunded} points refunded")
        return refunded

    async def apply_discount(self, booking_id: str, actor: User) -> Tuple[Booking, int]:
        """
        Spend 100 points for 20% off the service and pickup cost.

        Returns:
            (updated booking, customer's new point balance)

        Raises:
            AlreadyPaidError: If the booking is paid
            InvalidStateError: If a discount is already applied or the booking is cancelled
            InsufficientLoyaltyPointsError: If the customer has fewer than 100 points
        """
        async with self.locks.hold(booking_id):
            booking = await self._load_owned(booking_id, actor)
            ensure_unpaid(booking, "Cannot apply discount to a paid booking.")
            if booking.discount_applied:
                raise InvalidStateError("Discount has already been applied.")
            if booking.status == BookingStatus.CANCELLED.value:
                raise InvalidStateError("Cannot apply discount to a cancelled booking.")

            breakdown = reprice(booking, discount_applied=True)
            balance = await self.ledger.spend(booking.customer_id, DISCOUNT_POINTS_COST)

            try:
                updated = await self.db.update_booking(
                    booking_id,
                    breakdown.as_update(),
                    expected={"is_paid": False, "discount_applied": False},
                )
            except DatabaseError:
                await self.ledger.refund(booking.customer_id, DISCOUNT_POINTS_COST)
                raise
            if updated is None:
                balance = await self.ledger.refund(booking.customer_id, DISCOUNT_POINTS_COST)
                raise InvalidStateError(_CONCURRENT_CHANGE)

        logger.info(
            f"Discount of {updated.discount_amount} applied to booking {booking_id}, "
            f"new total {updated.final_amount}"
        )
        return updated, balance

    async def submit_review(
        self, booking_id: str, actor: User, rating: int, comment: Optional[str] = None
    ) -> Service:
        """
        Review the service of a completed booking, once.

        Raises:
            InvalidStateError: If the booking is not Completed or already reviewed
            ServiceNotFoundError: If the service has since been deleted
        """
        review = ServiceReview(
            user_id=actor.id,
            name=actor.full_name,
            rating=rating,
            comment=sanitize_text(comment or "", MAX_REVIEW_COMMENT_LENGTH),
            booking_id=booking_id,
            created_at=utc_now(),
        )

        async with self.locks.hold(booking_id):
            booking = await self._load_owned(booking_id, actor)
            ensure_reviewable(booking)

            service = (
                await self.db.get_service_by_id(booking.service_id)
                if booking.service_id
                else None
            )
            if service is None:
                raise ServiceNotFoundError("Service not found.")

            claimed = await self.db.update_booking(
                booking_id,
                {"review_submitted": True},
                expected={"review_submitted": False},
            )
            if claimed is None:
                raise InvalidStateError("You have already reviewed this booking.")

            updated = await self.db.add_service_review(service, review)

        logger.info(f"Review for booking {booking_id} added to service {service.id}")
        return updated

    # ========== Admin Operations ==========

    async def admin_list_bookings(
        self, page: int, limit: int, search: str = ""
    ) -> Dict[str, Any]:
        bookings, total = await self.db.get_admin_bookings(page, limit, search)
        return paginate(bookings, total, page, limit)

    async def admin_get_booking(self, booking_id: str) -> Booking:
        return await self._load(booking_id)

    async def admin_update_booking(
        self, booking_id: str, update: AdminBookingUpdate
    ) -> Booking:
        """
        Change status and/or override the service cost.

        A cost override re-prices the booking (keeping any discount at 20%)
        and is refused once the booking is paid.
        """
        outbox: List[Tuple] = []
        async with self.locks.hold(booking_id):
            booking = await self._load(booking_id)

            if update.total_cost is not None:
                ensure_unpaid(booking, "Cannot change the cost of a paid booking.")
                breakdown = reprice(booking, total_cost=update.total_cost)
                booking = await self._write(
                    booking, breakdown.as_update(), self._snapshot(booking)
                )
                logger.info(
                    f"Booking {booking_id} cost overridden to {update.total_cost}, "
                    f"final amount {booking.final_amount}"
                )

            if update.status is not None and update.status != booking.status:
                booking = await self._transition(booking, update.status, outbox)

        self._flush(outbox)
        return booking

    async def admin_delete_booking(self, booking_id: str) -> str:
        """
        Cancel-and-archive an active booking, or just archive a finished one.

        Returns:
            A message describing what happened
        """
        outbox: List[Tuple] = []
        async with self.locks.hold(booking_id):
            booking = await self._load(booking_id)

            if booking.status in {s.value for s in ACTIVE_STATUSES}:
                await self._transition(
                    booking, BookingStatus.CANCELLED, outbox, archive=True
                )
                message = (
                    "Booking has been cancelled and removed from view. "
                    "User has been notified."
                )
            else:
                if not booking.archived_by_admin:
                    await self._write(
                        booking, {"archived_by_admin": True}, {"status": booking.status}
                    )
                message = "Booking has been archived and removed from view."

        self._flush(outbox)
        logger.info(f"Admin delete on booking {booking_id}: {message}")
        return message

    async def admin_invoice(self, booking_id: str) -> Tuple[str, bytes]:
        """
        Render the PDF invoice of a paid booking.

        Returns:
            (file name, PDF bytes)
        """
        booking = await self._load(booking_id)
        if not booking.is_paid:
            raise InvalidStateError("Cannot generate an invoice for an unpaid booking.")

        customer = await self.db.get_user_by_id(booking.customer_id)
        workshop = await self.db.get_or_create_workshop()
        pdf = await generate_invoice(booking, workshop, customer)
        return f"invoice-{booking.id}.pdf", pdf

    # ========== Transitions ==========

    async def _transition(
        self,
        booking: Booking,
        target: str,
        outbox: List[Tuple],
        archive: bool = False,
    ) -> Booking:
        """Move to ``target`` status and queue its side effects."""
        target_status = check_status_transition(booking.status, target)

        data: Dict[str, Any] = {"status": target_status}
        if archive:
            data["archived_by_admin"] = True

        updated = await self._write(
            booking, data, {"status": booking.status, "is_paid": booking.is_paid}
        )
        logger.info(
            f"Booking {booking.id} status {booking.status} -> {target_status.value}"
        )

        customer = await self.db.get_user_by_id(updated.customer_id)
        customer_name = customer.full_name if customer else updated.customer_name
        customer_email = str(customer.email) if customer and customer.email else None

        if target_status == BookingStatus.CANCELLED:
            reversed_points, refunded_points = await self._return_points(updated, customer)
            subject, html = booking_cancelled_email(
                updated, customer_name, reversed_points, refunded_points
            )
            outbox.append(("email", customer_email, subject, html))
        elif target_status == BookingStatus.COMPLETED:
            subject, html = service_completed_email(updated, customer_name)
            outbox.append(("email", customer_email, subject, html))

        outbox.append(
            (
                "push",
                customer_channel(updated.customer_id),
                BOOKING_STATUS_EVENT,
                {
                    "bookingId": updated.id,
                    "serviceType": updated.service_type,
                    "newStatus": updated.status,
                    "message": status_update_message(updated),
                },
            )
        )
        return updated

    async def _return_points(
        self, booking: Booking, customer: Optional[User]
    ) -> Tuple[int, int]:
        """Reverse earned points and refund discount points of a cancelled booking."""
        if customer is None:
            logger.warning(
                f"Customer {booking.customer_id} of cancelled booking {booking.id} "
                f"no longer exists, no points adjusted"
            )
            return 0, 0

        reversed_points = max(booking.points_awarded, 0)
        refunded_points = DISCOUNT_POINTS_COST if booking.discount_applied else 0
        if reversed_points or refunded_points:
            await self.ledger.reverse(
                booking.customer_id, reversed_points, refund=refunded_points
            )
        return reversed_points, refunded_points

    def _flush(self, outbox: List[Tuple]) -> None:
        for kind, *args in outbox:
            if kind == "email":
                self.dispatcher.send_email(*args)
            else:
                self.dispatcher.push(*args)
