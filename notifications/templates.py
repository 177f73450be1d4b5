"""HTML email bodies for booking events."""

from html import escape
from typing import Tuple

from models.booking import Booking, PaymentMethod
from utils.datetime_utils import format_display_date

SUCCESS_ICON_URL = (
    "https://cdn.vectorstock.com/i/500p/20/36/"
    "3d-green-check-icon-tick-mark-symbol-vector-56142036.jpg"
)

_FOOTER = (
    '<hr/><p style="font-size: 0.8em; color: #777; text-align: center;">'
    "This is an automated email. Please do not reply.</p>"
)


def _layout(title: str, colour: str, body: str, icon: bool = True) -> str:
    icon_html = (
        f'<img src="{SUCCESS_ICON_URL}" alt="Success Icon" style="width: 80px;"/>'
        if icon
        else ""
    )
    return (
        '<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">'
        '<div style="text-align: center; padding: 20px; background-color: #f8f8f8;">'
        f'{icon_html}<h2 style="color: {colour};">{title}</h2></div>'
        f'<div style="padding: 20px;">{body}</div>'
        f"{_FOOTER}</div>"
    )


def _money(amount: float) -> str:
    return f"Rs. {amount:g}" if float(amount).is_integer() else f"Rs. {amount:.2f}"


def payment_confirmed_email(
    booking: Booking, customer_name: str, points: int
) -> Tuple[str, str]:
    """Confirmation sent once a booking is settled by any payment method."""
    name = escape(customer_name)
    service = escape(booking.service_type)
    date = format_display_date(booking.date)
    points_line = (
        f"<p>You have earned <strong>{points} loyalty points</strong> for this booking!</p>"
        if points
        else ""
    )

    if booking.payment_method == PaymentMethod.COD.value:
        title = "Booking Confirmed!"
        body = (
            f"<p>Dear {name},</p>"
            f"<p>Your booking <strong>#{booking.id}</strong> for <strong>{service}</strong> "
            f"on <strong>{date}</strong> has been confirmed.</p>"
            f"{points_line}"
            f"<p>Please pay <strong>{_money(booking.final_amount)}</strong> upon service completion.</p>"
            "<p>Payment Method: <strong>Cash on Delivery (COD)</strong></p>"
            "<p>Thank you for choosing MotoFix!</p>"
        )
    else:
        title = "Payment Successful!"
        body = (
            f"<p>Dear {name},</p>"
            f"<p>Your payment for booking <strong>#{booking.id}</strong> has been "
            f"successfully processed via {escape(booking.payment_method)}.</p>"
            f"{points_line}"
            f"<p>Your appointment for <strong>{service}</strong> on <strong>{date}</strong> is confirmed.</p>"
            f"<p>Total Amount Paid: <strong>{_money(booking.final_amount)}</strong></p>"
            "<p>Thank you for choosing MotoFix!</p>"
        )

    return "Your MotoFix Booking is Confirmed!", _layout(title, "#2c3e50", body)


def service_completed_email(booking: Booking, customer_name: str) -> Tuple[str, str]:
    body = (
        f"<p>Dear {escape(customer_name)},</p>"
        f"<p>We are pleased to inform you that your booking <strong>#{booking.id}</strong> "
        f"for <strong>{escape(booking.service_type)}</strong> has been marked as "
        "<strong>Completed</strong>.</p>"
        "<p>We hope you are satisfied with our service. Please feel free to provide any feedback.</p>"
        "<p>Thank you again for choosing MotoFix!</p>"
    )
    return "Your MotoFix Service is Complete!", _layout(
        "Your Service is Complete!", "#27ae60", body
    )


def booking_cancelled_email(
    booking: Booking,
    customer_name: str,
    reversed_points: int = 0,
    refunded_points: int = 0,
) -> Tuple[str, str]:
    """
    Cancellation notice for a booking cancelled by the workshop.

    Mentions a money refund when the booking was paid online, and any
    loyalty points taken back or returned.
    """
    paragraphs = [
        f"<p>Dear {escape(customer_name)},</p>",
        f"<p>We're writing to inform you that your booking <strong>#{booking.id}</strong> "
        f'for <strong>"{escape(booking.service_type)}"</strong> has been cancelled by '
        "our administration.</p>",
    ]
    if booking.is_paid and booking.payment_method != PaymentMethod.COD.value:
        paragraphs.append(
            f"<p>A refund for <strong>{_money(booking.final_amount)}</strong> "
            "will be processed shortly.</p>"
        )
    if reversed_points:
        paragraphs.append(
            f"<p>The <strong>{reversed_points} loyalty points</strong> you earned "
            "have been reversed.</p>"
        )
    if refunded_points:
        paragraphs.append(
            f"<p>The <strong>{refunded_points} loyalty points</strong> you used "
            "have been refunded.</p>"
        )
    paragraphs.append("<p>We apologize for any inconvenience.</p>")
    paragraphs.append("<p>Thank you,<br>The MotoFix Team</p>")

    return "Your MotoFix Booking Has Been Cancelled", _layout(
        "Booking Cancelled", "#c0392b", "".join(paragraphs), icon=False
    )


def status_update_message(booking: Booking) -> str:
    return f'Your booking for "{booking.service_type}" is now {booking.status}.'
