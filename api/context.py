"""Objects shared by request handlers, stored on the aiohttp application."""

from aiohttp import web

from bookings.service import BookingService
from config import Settings
from payments.cod import CashOnDelivery
from payments.esewa import EsewaGateway
from payments.http import GatewayClient
from payments.khalti import KhaltiGateway
from scheduler.dispatcher import NotificationDispatcher


class AppContext:
    """Everything the handlers need, wired once at startup."""

    def __init__(
        self,
        settings: Settings,
        db,
        bookings: BookingService,
        cod: CashOnDelivery,
        khalti: KhaltiGateway,
        esewa: EsewaGateway,
        dispatcher: NotificationDispatcher,
        push_hub,
        gateway_client: GatewayClient,
    ):
        self.settings = settings
        self.db = db
        self.bookings = bookings
        self.cod = cod
        self.khalti = khalti
        self.esewa = esewa
        self.dispatcher = dispatcher
        self.push_hub = push_hub
        self.gateway_client = gateway_client


CONTEXT_KEY = web.AppKey("context", AppContext)


def get_context(request: web.Request) -> AppContext:
    return request.app[CONTEXT_KEY]
