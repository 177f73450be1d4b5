"""
Unit tests for the pricing calculator.
"""

from datetime import datetime, timezone

import pytest

from bookings.pricing import (
    HaversineDistanceProvider,
    calculate_discount,
    calculate_pickup_cost,
    calculate_price,
    price_booking,
    reprice,
)
from models.booking import Booking, Coordinates
from tests.fakes import FixedDistanceProvider
from utils.exceptions import ValidationError

THAMEL = Coordinates(lat=27.7154, lng=85.3123)
BANESHWOR = Coordinates(lat=27.6915, lng=85.3420)


def test_price_without_pickup_or_discount():
    breakdown = calculate_price(1000)

    assert breakdown.total_cost == 1000
    assert breakdown.pickup_dropoff_cost == 0
    assert breakdown.discount_amount == 0
    assert breakdown.final_amount == 1000


def test_discount_is_twenty_percent():
    """1000 NPR with the discount: 200 off, 800 to pay."""
    breakdown = calculate_price(1000, discount_applied=True)

    assert breakdown.discount_amount == 200
    assert breakdown.final_amount == 800


def test_discount_covers_pickup_cost():
    breakdown = calculate_price(1000, pickup_dropoff_cost=500, discount_applied=True)

    assert breakdown.discount_amount == 300
    assert breakdown.final_amount == 1200


def test_pickup_cost_is_distance_times_rate():
    """10 km at 50 per km costs 500."""
    assert calculate_pickup_cost(10, 50) == 500
    assert calculate_pickup_cost(2.35, 50) == 117.5


def test_amounts_rounded_to_paisa():
    assert calculate_discount(333.33, 0) == 66.67
    breakdown = calculate_price(333.33, discount_applied=True)
    assert breakdown.final_amount == 266.66


def test_negative_inputs_rejected():
    with pytest.raises(ValidationError):
        calculate_price(-1)
    with pytest.raises(ValidationError):
        calculate_pickup_cost(-1, 50)


def test_price_booking_with_pickup():
    provider = FixedDistanceProvider(10)

    breakdown = price_booking(
        1000, True, 50, provider, pickup=THAMEL, dropoff=BANESHWOR
    )

    assert breakdown.pickup_dropoff_distance == 10
    assert breakdown.pickup_dropoff_cost == 500
    assert breakdown.final_amount == 1500
    assert provider.calls == [(THAMEL, BANESHWOR)]


def test_price_booking_without_pickup_ignores_coordinates():
    provider = FixedDistanceProvider(10)

    breakdown = price_booking(1000, False, 50, provider, pickup=THAMEL, dropoff=BANESHWOR)

    assert breakdown.pickup_dropoff_cost == 0
    assert provider.calls == []


def test_price_booking_requires_both_coordinates():
    with pytest.raises(ValidationError, match="incomplete"):
        price_booking(1000, True, 50, FixedDistanceProvider(10), pickup=THAMEL)


def test_haversine_distance():
    provider = HaversineDistanceProvider()

    distance = provider.distance_km(THAMEL, BANESHWOR)

    assert 3.5 < distance < 4.5
    assert distance == round(distance, 2)


def test_haversine_minimum_distance():
    provider = HaversineDistanceProvider(minimum_km=1.0)

    assert provider.distance_km(THAMEL, THAMEL) == 1.0


def test_haversine_rejects_non_positive_minimum():
    with pytest.raises(ValueError):
        HaversineDistanceProvider(minimum_km=0)


def test_reprice_keeps_unchanged_components():
    booking = Booking(
        customer_id="user-1",
        service_type="Full Servicing",
        bike_model="Bajaj Pulsar",
        date=datetime(2026, 3, 5, tzinfo=timezone.utc),
        total_cost=1000,
        requested_pickup_dropoff=True,
        pickup_dropoff_distance=10,
        pickup_dropoff_cost=500,
        final_amount=1500,
    )

    discounted = reprice(booking, discount_applied=True)
    overridden = reprice(booking, total_cost=2000)

    assert discounted.final_amount == 1200
    assert discounted.pickup_dropoff_cost == 500
    assert overridden.final_amount == 2500
    assert overridden.pickup_dropoff_distance == 10


def test_breakdown_as_update_has_booking_columns():
    update = calculate_price(1000, discount_applied=True).as_update()

    assert set(update) == {
        "total_cost",
        "pickup_dropoff_distance",
        "pickup_dropoff_cost",
        "discount_applied",
        "discount_amount",
        "final_amount",
    }
