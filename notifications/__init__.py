"""Customer notifications: SMTP email and message templates."""

from .email import EmailSender
from .templates import (
    booking_cancelled_email,
    payment_confirmed_email,
    service_completed_email,
    status_update_message,
)

__all__ = [
    "EmailSender",
    "booking_cancelled_email",
    "payment_confirmed_email",
    "service_completed_email",
    "status_update_message",
]
