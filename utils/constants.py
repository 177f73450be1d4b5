"""
Application-wide constants.
Centralizes magic numbers and configuration values.
"""

# Loyalty discount
DISCOUNT_RATE = 0.2  # 20% off service + pickup/dropoff
DISCOUNT_POINTS_COST = 100  # Points debited when a discount is applied

# Pagination defaults
USER_BOOKINGS_PAGE_SIZE = 11
ADMIN_BOOKINGS_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100

# Validation limits
MAX_NOTES_LENGTH = 1000
MAX_BIKE_MODEL_LENGTH = 100
MAX_ADDRESS_LENGTH = 255
MAX_REVIEW_COMMENT_LENGTH = 500
MIN_RATING = 1
MAX_RATING = 5

# Money
CURRENCY_DECIMALS = 2
PAISA_PER_RUPEE = 100  # Khalti amounts are expressed in paisa

# Push channels
CUSTOMER_CHANNEL_PREFIX = "chat-"
BOOKING_STATUS_EVENT = "booking_status_update"

# Workshop created on first booking when none exists
DEFAULT_WORKSHOP = {
    "owner_name": "Admin",
    "workshop_name": "FixHub Nepal",
    "email": "admin@fixhub.com",
    "offer_pickup_dropoff": True,
}


def customer_channel(customer_id: str) -> str:
    """Push channel name for a customer."""
    return f"{CUSTOMER_CHANNEL_PREFIX}{customer_id}"
