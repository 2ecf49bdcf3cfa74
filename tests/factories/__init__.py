"""Test factories for CreditGate API models."""

from .base import AsyncSQLAlchemyModelFactory
from .keys import KeyFactory
from .payments import CreditPackageFactory, PaymentFactory
from .providers import ProviderFactory
from .proxies import ProxyFactory

__all__ = [
    "AsyncSQLAlchemyModelFactory",
    "CreditPackageFactory",
    "KeyFactory",
    "PaymentFactory",
    "ProviderFactory",
    "ProxyFactory",
]
