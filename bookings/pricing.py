"""
Pricing calculator for bookings.

All monetary fields of a booking are derived here from the base service
price, the pickup/dropoff surcharge and the loyalty discount:

    pickup_dropoff_cost = distance_km * rate_per_km
    discount_amount     = 0.2 * (total_cost + pickup_dropoff_cost)  if discount applied
    final_amount        = total_cost + pickup_dropoff_cost - discount_amount

Amounts are rounded to paisa (2 decimals).
"""

import math
from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, Field

from models.booking import Booking, Coordinates
from utils.constants import CURRENCY_DECIMALS, DISCOUNT_RATE
from utils.exceptions import ValidationError

EARTH_RADIUS_KM = 6371.0088


class DistanceProvider(Protocol):
    """Anything that can tell the road or straight-line distance between two points."""

    def distance_km(self, origin: Coordinates, destination: Coordinates) -> float:
        ...


class HaversineDistanceProvider:
    """
    Great-circle distance between two coordinates.

    Results are rounded to 2 decimals and never below ``minimum_km``, so a
    pickup at the dropoff address still costs one minimum trip.
    """

    def __init__(self, minimum_km: float = 1.0):
        if minimum_km <= 0:
            raise ValueError("minimum_km must be positive")
        self.minimum_km = minimum_km

    def distance_km(self, origin: Coordinates, destination: Coordinates) -> float:
        lat1, lng1 = math.radians(origin.lat), math.radians(origin.lng)
        lat2, lng2 = math.radians(destination.lat), math.radians(destination.lng)

        a = (
            math.sin((lat2 - lat1) / 2) ** 2
            + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2
        )
        distance = 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))

        return max(round(distance, 2), self.minimum_km)


class PriceBreakdown(BaseModel):
    """Monetary fields of a booking."""

    total_cost: float = Field(..., ge=0)
    pickup_dropoff_distance: float = Field(default=0, ge=0)
    pickup_dropoff_cost: float = Field(default=0, ge=0)
    discount_applied: bool = False
    discount_amount: float = Field(default=0, ge=0)
    final_amount: float = Field(..., ge=0)

    def as_update(self) -> Dict[str, Any]:
        """Booking columns to write for this breakdown."""
        return self.model_dump()


def _money(value: float) -> float:
    return round(value, CURRENCY_DECIMALS)


def calculate_pickup_cost(distance_km: float, rate_per_km: float) -> float:
    """Surcharge for collecting and returning the vehicle."""
    if distance_km < 0 or rate_per_km < 0:
        raise ValidationError("Distance and rate must not be negative")
    return _money(distance_km * rate_per_km)


def calculate_discount(total_cost: float, pickup_dropoff_cost: float) -> float:
    """Loyalty discount: 20% of the service cost plus the surcharge."""
    return _money(DISCOUNT_RATE * (total_cost + pickup_dropoff_cost))


def calculate_price(
    total_cost: float,
    pickup_dropoff_cost: float = 0,
    discount_applied: bool = False,
    pickup_dropoff_distance: float = 0,
) -> PriceBreakdown:
    """
    Compute the full breakdown from already-known cost components.

    Args:
        total_cost: Base service price snapshot
        pickup_dropoff_cost: Surcharge (0 without pickup/dropoff)
        discount_applied: Whether the loyalty discount is on this booking
        pickup_dropoff_distance: Distance the surcharge was computed from

    Returns:
        PriceBreakdown with ``final_amount`` consistent with the other fields
    """
    if total_cost < 0 or pickup_dropoff_cost < 0:
        raise ValidationError("Costs must not be negative")

    total_cost = _money(total_cost)
    pickup_dropoff_cost = _money(pickup_dropoff_cost)
    discount_amount = (
        calculate_discount(total_cost, pickup_dropoff_cost) if discount_applied else 0.0
    )

    return PriceBreakdown(
        total_cost=total_cost,
        pickup_dropoff_distance=pickup_dropoff_distance,
        pickup_dropoff_cost=pickup_dropoff_cost,
        discount_applied=discount_applied,
        discount_amount=discount_amount,
        final_amount=_money(total_cost + pickup_dropoff_cost - discount_amount),
    )


def price_booking(
    total_cost: float,
    requested_pickup_dropoff: bool,
    rate_per_km: float,
    distance_provider: DistanceProvider,
    pickup: Optional[Coordinates] = None,
    dropoff: Optional[Coordinates] = None,
    discount_applied: bool = False,
) -> PriceBreakdown:
    """
    Price a booking from its inputs, measuring the pickup/dropoff distance.

    Raises:
        ValidationError: If pickup is requested without both coordinates
    """
    if not requested_pickup_dropoff:
        return calculate_price(total_cost, discount_applied=discount_applied)

    if pickup is None or dropoff is None:
        raise ValidationError("Pickup/Dropoff details are incomplete.")

    distance = distance_provider.distance_km(pickup, dropoff)
    if distance <= 0:
        raise ValidationError("Pickup/Dropoff distance must be positive")

    return calculate_price(
        total_cost,
        pickup_dropoff_cost=calculate_pickup_cost(distance, rate_per_km),
        discount_applied=discount_applied,
        pickup_dropoff_distance=distance,
    )


def reprice(booking: Booking, **changes: Any) -> PriceBreakdown:
    """
    Recompute a booking's breakdown after changing some cost inputs.

    Accepts ``total_cost``, ``pickup_dropoff_cost``, ``pickup_dropoff_distance``
    and ``discount_applied``; anything not given keeps the booking's value.
    """
    return calculate_price(
        changes.get("total_cost", booking.total_cost),
        pickup_dropoff_cost=changes.get(
            "pickup_dropoff_cost", booking.pickup_dropoff_cost
        ),
        discount_applied=changes.get("discount_applied", booking.discount_applied),
        pickup_dropoff_distance=changes.get(
            "pickup_dropoff_distance", booking.pickup_dropoff_distance
        ),
    )
