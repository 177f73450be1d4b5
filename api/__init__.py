"""REST API, JWT identity and websocket push for the booking backend."""

from .admin_routes import setup_admin_routes
from .context import CONTEXT_KEY, AppContext, get_context
from .middleware import error_middleware, security_headers_middleware
from .payment_routes import setup_payment_routes
from .realtime import PushHub, websocket_handler
from .user_routes import setup_user_routes

__all__ = [
    "AppContext",
    "CONTEXT_KEY",
    "PushHub",
    "error_middleware",
    "get_context",
    "security_headers_middleware",
    "setup_admin_routes",
    "setup_payment_routes",
    "setup_user_routes",
    "websocket_handler",
]
