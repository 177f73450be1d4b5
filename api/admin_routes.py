"""Administrator booking endpoints under /api/admin/bookings."""

from aiohttp import web
from aiohttp.web import Request, Response

from api.auth import admin_required
from api.context import get_context
from api.middleware import json_success, read_json
from models.booking import AdminBookingUpdate
from utils.constants import ADMIN_BOOKINGS_PAGE_SIZE
from utils.validation import parse_pagination, sanitize_text


@admin_required
async def list_bookings(request: Request) -> Response:
    ctx = get_context(request)
    page, limit = parse_pagination(
        request.query.get("page"), request.query.get("limit"), ADMIN_BOOKINGS_PAGE_SIZE
    )
    search = sanitize_text(request.query.get("search", ""), max_length=100)
    result = await ctx.bookings.admin_list_bookings(page, limit, search)
    return json_success(**result)


@admin_required
async def get_booking(request: Request) -> Response:
    ctx = get_context(request)
    booking = await ctx.bookings.admin_get_booking(request.match_info["id"])
    return json_success(booking)


@admin_required
async def update_booking(request: Request) -> Response:
    ctx = get_context(request)
    body = await read_json(request)
    update = AdminBookingUpdate(
        status=body.get("status"),
        total_cost=body.get("totalCost", body.get("total_cost")),
    )
    booking = await ctx.bookings.admin_update_booking(request.match_info["id"], update)
    return json_success(booking, message="Booking updated successfully.")


@admin_required
async def delete_booking(request: Request) -> Response:
    ctx = get_context(request)
    message = await ctx.bookings.admin_delete_booking(request.match_info["id"])
    return json_success(message=message)


@admin_required
async def booking_invoice(request: Request) -> Response:
    ctx = get_context(request)
    filename, pdf = await ctx.bookings.admin_invoice(request.match_info["id"])
    return web.Response(
        body=pdf,
        content_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def setup_admin_routes(app: web.Application) -> None:
    app.router.add_get("/api/admin/bookings", list_bookings)
    app.router.add_get("/api/admin/bookings/{id}", get_booking)
    app.router.add_put("/api/admin/bookings/{id}", update_booking)
    app.router.add_delete("/api/admin/bookings/{id}", delete_booking)
    app.router.add_get("/api/admin/bookings/{id}/invoice", booking_invoice)
