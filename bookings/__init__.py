"""Booking lifecycle: pricing, state machine, loyalty ledger and operations."""

from .invoice import generate_invoice, render_invoice
from .loyalty import LoyaltyLedger, RewardPolicy
from .pricing import (
    DistanceProvider,
    HaversineDistanceProvider,
    PriceBreakdown,
    calculate_price,
    price_booking,
)
from .service import BookingService

__all__ = [
    "BookingService",
    "DistanceProvider",
    "HaversineDistanceProvider",
    "LoyaltyLedger",
    "PriceBreakdown",
    "RewardPolicy",
    "calculate_price",
    "generate_invoice",
    "price_booking",
    "render_invoice",
]
