"""Pydantic models for data validation and serialization."""

from .booking import (
    AdminBookingUpdate,
    Booking,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    Coordinates,
    PaymentMethod,
    PaymentStatus,
)
from .service import Service, ServiceReview
from .user import User, UserRole
from .workshop import Workshop

__all__ = [
    "AdminBookingUpdate",
    "Booking",
    "BookingCreate",
    "BookingStatus",
    "BookingUpdate",
    "Coordinates",
    "PaymentMethod",
    "PaymentStatus",
    "Service",
    "ServiceReview",
    "User",
    "UserRole",
    "Workshop",
]
