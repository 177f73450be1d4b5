"""
Basic unit tests for models and enums.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from models.booking import (
    Booking,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    Coordinates,
    PaymentMethod,
    PaymentStatus,
)
from models.service import Service, ServiceReview
from models.user import User, UserRole
from utils.constants import customer_channel


def test_booking_status_enum():
    """Test booking status enum."""
    assert BookingStatus.PENDING.value == "Pending"
    assert BookingStatus.IN_PROGRESS.value == "In Progress"
    assert BookingStatus.COMPLETED.value == "Completed"
    assert BookingStatus.CANCELLED.value == "Cancelled"


def test_payment_enums():
    """Test payment status and method enums."""
    assert PaymentStatus.PAID.value == "Paid"
    assert PaymentMethod.NOT_SELECTED.value == "Not Selected"
    assert PaymentMethod.ESEWA.value == "eSewa"


def test_booking_defaults():
    """A new booking is Pending, unpaid and without a payment method."""
    booking = Booking(
        customer_id="user-1",
        service_type="Full Servicing",
        bike_model="Bajaj Pulsar",
        date=datetime(2026, 3, 5, tzinfo=timezone.utc),
        total_cost=1000,
        final_amount=1000,
    )

    assert booking.status == "Pending"
    assert booking.payment_status == "Pending"
    assert booking.payment_method == "Not Selected"
    assert booking.is_paid is False
    assert booking.points_awarded == 0
    assert booking.discount_applied is False


def test_booking_rejects_negative_amounts():
    with pytest.raises(ValidationError):
        Booking(
            customer_id="user-1",
            service_type="Full Servicing",
            bike_model="Bajaj Pulsar",
            date=datetime(2026, 3, 5, tzinfo=timezone.utc),
            total_cost=-1,
            final_amount=0,
        )


def test_booking_create_requires_pickup_details():
    """Pickup requested without both addresses and coordinates is rejected."""
    with pytest.raises(ValidationError, match="Pickup/Dropoff details are incomplete"):
        BookingCreate(
            service_id="svc-1",
            bike_model="Bajaj Pulsar",
            date="2026-03-05T10:00:00Z",
            requested_pickup_dropoff=True,
            pickup_address="Thamel",
        )


def test_booking_create_with_pickup():
    payload = BookingCreate(
        service_id="svc-1",
        bike_model="Bajaj Pulsar",
        date="2026-03-05T10:00:00Z",
        requested_pickup_dropoff=True,
        pickup_address="Thamel",
        dropoff_address="Baneshwor",
        pickup_coordinates={"lat": 27.7154, "lng": 85.3123},
        dropoff_coordinates={"lat": 27.6915, "lng": 85.3420},
    )

    assert payload.pickup_coordinates == Coordinates(lat=27.7154, lng=85.3123)


def test_coordinates_range():
    with pytest.raises(ValidationError):
        Coordinates(lat=91, lng=0)
    with pytest.raises(ValidationError):
        Coordinates(lat=0, lng=-181)


def test_booking_update_priced_fields():
    patch = BookingUpdate(bike_model="Yamaha FZ", payment_method="COD")

    assert patch.priced_fields() == {"bike_model": "Yamaha FZ"}
    assert patch.has_state_fields() is True
    assert BookingUpdate(notes="x").has_state_fields() is False


def test_user_roles():
    """Test user role enum and admin flag."""
    assert User(id="a", role=UserRole.ADMIN).is_admin is True
    assert User(id="b").is_admin is False
    with pytest.raises(ValidationError):
        User(id="c", loyalty_points=-5)


def test_service_with_review():
    """Adding a review recomputes the rating and count."""
    service = Service(
        id="svc-1",
        name="Full Servicing",
        price=1000,
        reviews=[ServiceReview(user_id="u1", rating=4)],
        rating=4,
        num_reviews=1,
    )

    updated = service.with_review(ServiceReview(user_id="u2", rating=5))

    assert updated.num_reviews == 2
    assert updated.rating == 4.5
    assert service.num_reviews == 1


def test_review_rating_bounds():
    with pytest.raises(ValidationError):
        ServiceReview(user_id="u1", rating=6)
    with pytest.raises(ValidationError):
        ServiceReview(user_id="u1", rating=0)


def test_customer_channel():
    assert customer_channel("user-1") == "chat-user-1"
