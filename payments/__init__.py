"""Payment settlement: cash on delivery, eSewa and Khalti."""

from .cod import CashOnDelivery
from .esewa import EsewaGateway, EsewaPaymentRequest
from .http import GatewayClient
from .khalti import KhaltiGateway
from .settlement import Settlement, SettlementResult

__all__ = [
    "CashOnDelivery",
    "EsewaGateway",
    "EsewaPaymentRequest",
    "GatewayClient",
    "KhaltiGateway",
    "Settlement",
    "SettlementResult",
]
