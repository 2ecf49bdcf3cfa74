"""Database models for CreditGate API."""

from .base import Base
from .keys import Key
from .packages import CreditPackage
from .payments import Payment, PaymentMethod, PaymentStatus
from .providers import Provider, ProviderKeyStatus, ProviderStatus
from .proxies import Proxy, ProxyProtocol
from .request_logs import ApiRequestLog, RequestType

__all__ = [
    # Base
    "Base",
    # Enums
    "PaymentMethod",
    "PaymentStatus",
    "ProviderStatus",
    "ProxyProtocol",
    "RequestType",
    # Models
    "ApiRequestLog",
    "CreditPackage",
    "Key",
    "Payment",
    "Provider",
    "ProviderKeyStatus",
    "Proxy",
]
