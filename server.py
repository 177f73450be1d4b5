"""
HTTP server for the FixHub booking backend.

Wires persistence, the booking service, payment adapters and the
notification dispatcher into an aiohttp application.
"""

import sys
import time
from typing import Optional

from aiohttp import web
from aiohttp.web import Request, Response

from api import (
    CONTEXT_KEY,
    AppContext,
    PushHub,
    error_middleware,
    security_headers_middleware,
    setup_admin_routes,
    setup_payment_routes,
    setup_user_routes,
    websocket_handler,
)
from bookings import BookingService, HaversineDistanceProvider, LoyaltyLedger, RewardPolicy
from config import Settings, settings
from db import get_db_client
from notifications import EmailSender
from payments import CashOnDelivery, EsewaGateway, GatewayClient, KhaltiGateway, Settlement
from scheduler import NotificationDispatcher
from utils.logging_config import configure_root_logging, setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="server.log", log_dir="logs"
)

_START_TIME = time.time()


def build_context(app_settings: Settings, db=None) -> AppContext:
    """Create every service from settings."""
    db = db or get_db_client()
    push_hub = PushHub()
    dispatcher = NotificationDispatcher.from_settings(
        app_settings, EmailSender(app_settings), push_hub=push_hub
    )
    ledger = LoyaltyLedger(db, RewardPolicy.from_settings(app_settings))
    settlement = Settlement(db, ledger, dispatcher)
    gateway_client = GatewayClient(
        timeout=app_settings.gateway_timeout_seconds,
        max_retries=app_settings.gateway_max_retries,
    )

    return AppContext(
        settings=app_settings,
        db=db,
        bookings=BookingService(
            db,
            ledger,
            dispatcher,
            HaversineDistanceProvider(app_settings.min_pickup_distance_km),
        ),
        cod=CashOnDelivery(settlement),
        khalti=KhaltiGateway.from_settings(app_settings, settlement, db, gateway_client),
        esewa=EsewaGateway.from_settings(app_settings, settlement, db, gateway_client),
        dispatcher=dispatcher,
        push_hub=push_hub,
        gateway_client=gateway_client,
    )


async def health_check(request: Request) -> Response:
    """Liveness probe."""
    ctx = request.app[CONTEXT_KEY]
    return web.json_response(
        {
            "status": "ok",
            "service": "fixhub-booking",
            "timestamp": time.time(),
            "uptime_hours": round((time.time() - _START_TIME) / 3600, 2),
            "scheduler_running": ctx.dispatcher.running,
        }
    )


async def _on_startup(app: web.Application) -> None:
    app[CONTEXT_KEY].dispatcher.start()
    logger.info("Server started")


async def _on_cleanup(app: web.Application) -> None:
    ctx = app[CONTEXT_KEY]
    ctx.dispatcher.shutdown()
    await ctx.push_hub.close_all()
    await ctx.gateway_client.close()
    logger.info("Server stopped")


def create_app(context: Optional[AppContext] = None) -> web.Application:
    """
    Create aiohttp application with middleware and routes.

    Args:
        context: Pre-built services (tests pass fakes); built from
            settings when omitted

    Returns:
        Configured web application
    """
    app = web.Application(
        middlewares=[security_headers_middleware, error_middleware]
    )
    app[CONTEXT_KEY] = context or build_context(settings)

    setup_user_routes(app)
    setup_admin_routes(app)
    setup_payment_routes(app)
    app.router.add_get("/ws", websocket_handler)
    app.router.add_get("/health", health_check)

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


def main() -> None:
    """Run the server."""
    configure_root_logging(settings.log_level)

    try:
        settings.validate_all_required()
    except ValueError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(
        f"Starting FixHub booking server on {settings.host}:{settings.port} "
        f"({settings.environment})"
    )
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
