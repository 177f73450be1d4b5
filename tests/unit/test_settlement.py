"""
Unit tests for settlement and cash-on-delivery confirmation.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from bookings.service import BookingService
from models.booking import AdminBookingUpdate, PaymentMethod
from payments.cod import CashOnDelivery
from payments.settlement import Settlement, amounts_match
from utils.exceptions import (
    AlreadyPaidError,
    BookingNotFoundError,
    DatabaseError,
    ExternalVerificationError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from utils.locks import KeyedLock


def test_amounts_match_to_paisa():
    assert amounts_match(800.0, 800)
    assert amounts_match(799.999, 800)
    assert not amounts_match(799.5, 800)


class TestSettle:
    """Tests for Settlement.settle."""

    @pytest.mark.asyncio
    async def test_settle_marks_paid_and_awards(
        self, db, settlement, make_booking, customer, dispatcher
    ):
        booking = make_booking(final_amount=800, discount_applied=True, discount_amount=200)

        result = await settlement.settle(booking.id, PaymentMethod.KHALTI, amount_confirmed=800)

        assert result.success is True
        assert result.already_paid is False
        assert result.points_awarded == 14
        stored = db.bookings[booking.id]
        assert stored.is_paid is True
        assert stored.payment_status == "Paid"
        assert stored.payment_method == "Khalti"
        assert stored.points_awarded == 14
        assert db.points(customer.id) == 164
        assert dispatcher.subjects() == ["Your MotoFix Booking is Confirmed!"]
        assert "Payment Successful!" in dispatcher.emails[0][2]

    @pytest.mark.asyncio
    async def test_settle_paid_booking_is_noop(
        self, db, settlement, make_booking, customer, dispatcher
    ):
        booking = make_booking(
            is_paid=True, payment_status="Paid", payment_method="eSewa", points_awarded=15
        )

        result = await settlement.settle(booking.id, PaymentMethod.ESEWA)

        assert result.already_paid is True
        assert result.message == "Payment was already verified."
        assert result.points_awarded == 15
        assert db.points(customer.id) == 150
        assert dispatcher.emails == []

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_award_once(
        self, db, settlement, make_booking, customer, dispatcher
    ):
        booking = make_booking()

        results = await asyncio.gather(
            *(settlement.settle(booking.id, PaymentMethod.KHALTI) for _ in range(5))
        )

        assert sum(not r.already_paid for r in results) == 1
        assert db.points(customer.id) == 150 + 15
        assert len(dispatcher.emails) == 1

    @pytest.mark.asyncio
    async def test_duplicates_across_processes_award_once(
        self, db, ledger, dispatcher, make_booking, customer
    ):
        """Separate lock registries: only the database check-and-set stops the second claim."""
        booking = make_booking()
        first = Settlement(db, ledger, dispatcher, locks=KeyedLock())
        second = Settlement(db, ledger, dispatcher, locks=KeyedLock())

        results = await asyncio.gather(
            first.settle(booking.id, PaymentMethod.ESEWA),
            second.settle(booking.id, PaymentMethod.ESEWA),
        )

        assert sorted(r.already_paid for r in results) == [False, True]
        assert db.points(customer.id) == 165

    @pytest.mark.asyncio
    async def test_cancel_between_check_and_claim_blocks_payment(
        self, db, ledger, dispatcher, distance, make_booking, customer
    ):
        """Admin cancels from another process after the status check passed."""
        booking = make_booking()
        admin_side = BookingService(db, ledger, dispatcher, distance, locks=KeyedLock())
        payment_side = Settlement(db, ledger, dispatcher, locks=KeyedLock())
        real_mark_paid = db.mark_booking_paid

        async def cancel_then_claim(*args, **kwargs):
            await admin_side.admin_update_booking(
                booking.id, AdminBookingUpdate(status="Cancelled")
            )
            return await real_mark_paid(*args, **kwargs)

        db.mark_booking_paid = cancel_then_claim

        with pytest.raises(InvalidStateError, match="cancelled"):
            await payment_side.settle(booking.id, PaymentMethod.KHALTI)

        stored = db.bookings[booking.id]
        assert stored.status == "Cancelled"
        assert stored.is_paid is False
        assert stored.points_awarded == 0
        assert db.points(customer.id) == 150

    @pytest.mark.asyncio
    async def test_award_failure_still_settles_without_points(
        self, db, ledger, settlement, make_booking, customer, dispatcher
    ):
        booking = make_booking()
        ledger.award = AsyncMock(side_effect=DatabaseError("timeout"))

        result = await settlement.settle(booking.id, PaymentMethod.KHALTI)

        assert result.already_paid is False
        assert result.points_awarded == 0
        assert result.message == "Payment successful!"
        stored = db.bookings[booking.id]
        assert stored.is_paid is True
        assert stored.points_awarded == 0
        assert db.points(customer.id) == 150
        assert "loyalty points" not in dispatcher.emails[0][2]

        retry = await settlement.settle(booking.id, PaymentMethod.KHALTI)

        assert retry.already_paid is True
        assert retry.points_awarded == 0

    @pytest.mark.asyncio
    async def test_amount_mismatch(self, db, settlement, make_booking):
        booking = make_booking()

        with pytest.raises(ExternalVerificationError, match="does not match"):
            await settlement.settle(booking.id, PaymentMethod.KHALTI, amount_confirmed=500)

        assert db.bookings[booking.id].is_paid is False

    @pytest.mark.asyncio
    async def test_superseded_reference(self, db, settlement, make_booking):
        booking = make_booking(payment_reference="b-2-new")

        with pytest.raises(ExternalVerificationError, match="superseded"):
            await settlement.settle(
                booking.id, PaymentMethod.ESEWA, payment_reference="b-1-old"
            )

    @pytest.mark.asyncio
    async def test_cancelled_booking(self, settlement, make_booking):
        booking = make_booking(status="Cancelled")

        with pytest.raises(InvalidStateError, match="cancelled"):
            await settlement.settle(booking.id, PaymentMethod.KHALTI)

    @pytest.mark.asyncio
    async def test_failed_payment_can_be_retried(self, db, settlement, make_booking):
        booking = make_booking(payment_status="Failed")

        result = await settlement.settle(booking.id, PaymentMethod.KHALTI)

        assert result.already_paid is False
        assert db.bookings[booking.id].payment_status == "Paid"

    @pytest.mark.asyncio
    async def test_missing_booking(self, settlement):
        with pytest.raises(BookingNotFoundError):
            await settlement.settle("missing", PaymentMethod.COD)

    @pytest.mark.asyncio
    async def test_wrong_owner(self, settlement, make_booking, other_customer):
        booking = make_booking()

        with pytest.raises(ForbiddenError):
            await settlement.settle(booking.id, PaymentMethod.COD, owner_id=other_customer.id)

    @pytest.mark.asyncio
    async def test_notification_lookup_failure_does_not_fail_payment(
        self, db, settlement, make_booking, dispatcher
    ):
        booking = make_booking()
        real_get_user = db.get_user_by_id
        db.get_user_by_id = AsyncMock(side_effect=DatabaseError("connection reset"))

        result = await settlement.settle(booking.id, PaymentMethod.KHALTI)

        db.get_user_by_id = real_get_user
        assert result.already_paid is False
        assert db.bookings[booking.id].is_paid is True
        assert dispatcher.emails == []


class TestCashOnDelivery:
    """Tests for COD confirmation."""

    @pytest.mark.asyncio
    async def test_confirm(self, db, settlement, make_booking, customer, dispatcher):
        booking = make_booking()

        result = await CashOnDelivery(settlement).confirm(booking.id, customer)

        assert result.points_awarded == 15
        assert db.bookings[booking.id].payment_method == "COD"
        assert "Cash on Delivery" in dispatcher.emails[0][2]

    @pytest.mark.asyncio
    async def test_confirm_twice_awards_once(self, db, settlement, make_booking, customer):
        booking = make_booking()
        cod = CashOnDelivery(settlement)
        await cod.confirm(booking.id, customer)

        with pytest.raises(AlreadyPaidError):
            await cod.confirm(booking.id, customer)

        assert db.points(customer.id) == 165

    @pytest.mark.asyncio
    async def test_only_cod(self, settlement, make_booking, customer):
        booking = make_booking()

        with pytest.raises(ValidationError, match="only for COD"):
            await CashOnDelivery(settlement).confirm(booking.id, customer, "Khalti")

    @pytest.mark.asyncio
    async def test_only_owner(self, settlement, make_booking, other_customer):
        booking = make_booking()

        with pytest.raises(ForbiddenError):
            await CashOnDelivery(settlement).confirm(booking.id, other_customer)
