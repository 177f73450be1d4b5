"""Customer booking endpoints under /api/user/bookings and /api/reviews."""

from aiohttp import web
from aiohttp.web import Request, Response

from api.auth import current_user, login_required
from api.context import get_context
from api.middleware import json_success, read_json
from models.booking import BookingCreate, BookingUpdate
from utils.constants import USER_BOOKINGS_PAGE_SIZE
from utils.exceptions import ValidationError
from utils.validation import parse_pagination


@login_required
async def list_bookings(request: Request) -> Response:
    ctx = get_context(request)
    page, limit = parse_pagination(
        request.query.get("page"), request.query.get("limit"), USER_BOOKINGS_PAGE_SIZE
    )
    result = await ctx.bookings.list_bookings(current_user(request).id, page, limit)
    return json_success(**result)


@login_required
async def create_booking(request: Request) -> Response:
    ctx = get_context(request)
    payload = BookingCreate(**await read_json(request))
    booking = await ctx.bookings.create_booking(current_user(request).id, payload)
    return json_success(
        booking, message="Booking created. Please complete payment.", status=201
    )


@login_required
async def pending_bookings(request: Request) -> Response:
    ctx = get_context(request)
    bookings = await ctx.bookings.get_pending_bookings(current_user(request).id)
    return json_success(bookings)


@login_required
async def booking_history(request: Request) -> Response:
    ctx = get_context(request)
    bookings = await ctx.bookings.get_booking_history(current_user(request).id)
    return json_success(bookings)


@login_required
async def get_booking(request: Request) -> Response:
    ctx = get_context(request)
    booking = await ctx.bookings.get_booking(
        request.match_info["id"], current_user(request)
    )
    return json_success(booking)


@login_required
async def update_booking(request: Request) -> Response:
    ctx = get_context(request)
    patch = BookingUpdate(**await read_json(request))
    booking = await ctx.bookings.update_booking(
        request.match_info["id"], current_user(request), patch
    )
    return json_success(booking, message="Booking updated successfully")


@login_required
async def cancel_booking(request: Request) -> Response:
    ctx = get_context(request)
    await ctx.bookings.cancel_booking(request.match_info["id"], current_user(request))
    return json_success(
        message="Booking cancelled successfully. Any used loyalty points have been refunded."
    )


@login_required
async def confirm_cod_payment(request: Request) -> Response:
    ctx = get_context(request)
    body = await read_json(request)
    result = await ctx.cod.confirm(
        request.match_info["id"], current_user(request), body.get("paymentMethod")
    )
    return json_success(
        result.booking,
        message=f"Payment confirmed! You've earned {result.points_awarded} loyalty points.",
    )


@login_required
async def apply_discount(request: Request) -> Response:
    ctx = get_context(request)
    booking, balance = await ctx.bookings.apply_discount(
        request.match_info["id"], current_user(request)
    )
    return json_success(
        {"booking": booking, "loyaltyPoints": balance},
        message=f"20% discount applied! Your new total is {booking.final_amount}.",
    )


@login_required
async def verify_khalti(request: Request) -> Response:
    ctx = get_context(request)
    body = await read_json(request)
    result = await ctx.khalti.verify_payment(
        body.get("booking_id"), body.get("token"), body.get("amount"), current_user(request)
    )
    return json_success(result.booking, message=result.message)


@login_required
async def submit_review(request: Request) -> Response:
    ctx = get_context(request)
    body = await read_json(request)
    rating = body.get("rating")
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be a whole number from 1 to 5.")
    service = await ctx.bookings.submit_review(
        request.match_info["bookingId"], current_user(request), rating, body.get("comment")
    )
    return json_success(
        {"rating": service.rating, "numReviews": service.num_reviews},
        message="Thank you for your review!",
        status=201,
    )


def setup_user_routes(app: web.Application) -> None:
    app.router.add_get("/api/user/bookings", list_bookings)
    app.router.add_post("/api/user/bookings", create_booking)
    app.router.add_get("/api/user/bookings/pending", pending_bookings)
    app.router.add_get("/api/user/bookings/history", booking_history)
    app.router.add_post("/api/user/bookings/verify-khalti", verify_khalti)
    app.router.add_get("/api/user/bookings/{id}", get_booking)
    app.router.add_put("/api/user/bookings/{id}", update_booking)
    app.router.add_delete("/api/user/bookings/{id}", cancel_booking)
    app.router.add_put("/api/user/bookings/{id}/pay", confirm_cod_payment)
    app.router.add_put("/api/user/bookings/{id}/apply-discount", apply_discount)
    app.router.add_post("/api/reviews/{bookingId}", submit_review)
