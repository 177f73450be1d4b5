"""PDF invoices for paid bookings."""

import asyncio
from io import BytesIO
from typing import List, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from models.booking import Booking
from models.user import User
from models.workshop import Workshop
from utils.datetime_utils import format_display_date, utc_now
from utils.exceptions import InvalidStateError


def _amount(value: float) -> str:
    return f"Rs. {value:,.2f}"


def _line_items(booking: Booking) -> List[Tuple[str, float]]:
    items = [(booking.service_type, booking.total_cost)]
    if booking.requested_pickup_dropoff and booking.pickup_dropoff_cost:
        items.append(
            (
                f"Pickup & dropoff ({booking.pickup_dropoff_distance:g} km)",
                booking.pickup_dropoff_cost,
            )
        )
    if booking.discount_applied and booking.discount_amount:
        items.append(("Loyalty discount (20%)", -booking.discount_amount))
    return items


def render_invoice(
    booking: Booking, workshop: Workshop, customer: Optional[User] = None
) -> bytes:
    """
    Draw a one-page A4 invoice.

    Raises:
        InvalidStateError: If the booking has not been paid
    """
    if not booking.is_paid:
        raise InvalidStateError("Cannot generate an invoice for an unpaid booking.")

    buffer = BytesIO()
    p = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    x_margin = 0.75 * inch
    right = width - x_margin
    y = height - inch

    p.setTitle(f"Invoice {booking.id}")

    p.setFont("Helvetica-Bold", 18)
    p.drawString(x_margin, y, workshop.workshop_name)
    p.setFont("Helvetica", 10)
    y -= 16
    p.drawString(x_margin, y, workshop.address or "Address Not Set")
    y -= 14
    p.drawString(x_margin, y, workshop.phone or "Phone Not Set")

    p.setFont("Helvetica-Bold", 14)
    p.drawRightString(right, height - inch, "INVOICE")
    p.setFont("Helvetica", 10)
    p.drawRightString(right, height - inch - 16, f"#{booking.id}")
    p.drawRightString(right, height - inch - 30, f"Issued {format_display_date(utc_now())}")

    y -= 40
    p.setFont("Helvetica-Bold", 12)
    p.drawString(x_margin, y, "Billed To")
    p.setFont("Helvetica", 10)
    y -= 16
    p.drawString(x_margin, y, (customer.full_name if customer else "") or booking.customer_name)
    if customer and customer.email:
        y -= 14
        p.drawString(x_margin, y, str(customer.email))
    if customer and customer.phone:
        y -= 14
        p.drawString(x_margin, y, customer.phone)

    y -= 28
    p.drawString(x_margin, y, f"Bike Model: {booking.bike_model}")
    y -= 14
    p.drawString(x_margin, y, f"Service Date: {format_display_date(booking.date)}")
    y -= 14
    p.drawString(x_margin, y, f"Payment Method: {booking.payment_method}")

    y -= 30
    p.setFont("Helvetica-Bold", 11)
    p.drawString(x_margin, y, "Description")
    p.drawRightString(right, y, "Amount")
    y -= 6
    p.line(x_margin, y, right, y)

    p.setFont("Helvetica", 10)
    for description, amount in _line_items(booking):
        y -= 18
        p.drawString(x_margin, y, description)
        p.drawRightString(right, y, _amount(amount))

    y -= 10
    p.line(x_margin, y, right, y)
    y -= 18
    p.setFont("Helvetica-Bold", 12)
    p.drawString(x_margin, y, "Total Paid")
    p.drawRightString(right, y, _amount(booking.final_amount))

    p.setFont("Helvetica-Oblique", 9)
    p.drawString(x_margin, inch, "Thank you for choosing MotoFix!")

    p.showPage()
    p.save()
    return buffer.getvalue()


async def generate_invoice(
    booking: Booking, workshop: Workshop, customer: Optional[User] = None
) -> bytes:
    """Render the invoice in a worker thread."""
    if not booking.is_paid:
        raise InvalidStateError("Cannot generate an invoice for an unpaid booking.")
    return await asyncio.to_thread(render_invoice, booking, workshop, customer)
