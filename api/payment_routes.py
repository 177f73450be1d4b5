"""eSewa endpoints under /api/payment/esewa."""

from aiohttp import web
from aiohttp.web import Request, Response

from api.auth import current_user, login_required
from api.context import get_context
from api.middleware import json_success, read_json


@login_required
async def initiate_esewa(request: Request) -> Response:
    """Return the signed form the browser posts to eSewa."""
    ctx = get_context(request)
    body = await read_json(request)
    payment = await ctx.esewa.initiate(body.get("bookingId"), current_user(request))
    return json_success(
        {
            **payment.fields,
            "transaction_uuid": payment.transaction_uuid,
            "ESEWA_URL": payment.form_url,
        }
    )


async def verify_esewa(request: Request) -> Response:
    """
    Verify the callback eSewa redirected the customer back with.

    Unauthenticated: the payload is signed by eSewa and the transaction is
    re-queried from eSewa before anything is settled.
    """
    ctx = get_context(request)
    result = await ctx.esewa.verify(request.query.get("data", ""))
    return json_success(message=result.message)


def setup_payment_routes(app: web.Application) -> None:
    app.router.add_post("/api/payment/esewa/initiate", initiate_esewa)
    app.router.add_get("/api/payment/esewa/verify", verify_esewa)
